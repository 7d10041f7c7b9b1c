"""Shared pytest fixtures."""

from typing import Any, Optional

import pytest

from graphtools.auth.authenticator import AuthContext, GRANT_DELEGATED
from graphtools.graph.client import GraphAPIError
from graphtools.removal.models import DirectoryPrincipal, OutputBase

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_OWNER_ID = "99999999-9999-9999-9999-999999999999"
UPN = "alice@contoso.com"


def guid(n: int) -> str:
    """Deterministic canonical GUID for test data."""
    return f"{n:08x}-0000-4000-8000-{n:012x}"


class FakeGraph:
    """
    In-memory stand-in for GraphClient.

    `routes` maps an endpoint to what the call returns (a list for paged reads,
    a dict for single reads). `failures` maps an endpoint to the exception the
    call raises. Every call is recorded in `calls` as (method, endpoint, payload).
    """

    def __init__(
        self,
        routes: Optional[dict[str, Any]] = None,
        failures: Optional[dict[str, Exception]] = None,
    ):
        self.routes = routes or {}
        self.failures = failures or {}
        self.calls: list[tuple[str, str, Any]] = []
        self.access_token = "token-1"

    def _raise_if_failing(self, endpoint: str):
        if endpoint in self.failures:
            raise self.failures[endpoint]

    async def get(self, endpoint, params=None, beta=False):
        self.calls.append(("GET", endpoint, params))
        self._raise_if_failing(endpoint)
        if endpoint not in self.routes:
            raise GraphAPIError(404, "Resource not found", endpoint)
        return self.routes[endpoint]

    async def get_all_pages(self, endpoint, params=None, beta=False, top=None, skip_top=False):
        self.calls.append(("GET", endpoint, params))
        self._raise_if_failing(endpoint)
        return list(self.routes.get(endpoint, []))

    async def post(self, endpoint, json_body=None, beta=False):
        self.calls.append(("POST", endpoint, json_body))
        self._raise_if_failing(endpoint)
        return {}

    async def delete(self, endpoint, beta=False):
        self.calls.append(("DELETE", endpoint, None))
        self._raise_if_failing(endpoint)
        return {}

    def set_access_token(self, access_token):
        self.access_token = access_token

    @property
    def writes(self) -> list[tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] != "GET"]

    def calls_to(self, endpoint: str) -> list[tuple[str, str, Any]]:
        return [c for c in self.calls if c[1] == endpoint]


class FakeAuthenticator:
    """Authenticator double exposing a fixed AuthContext and a scripted reconnect."""

    def __init__(
        self,
        scopes: Optional[list[str]] = None,
        grant_type: str = GRANT_DELEGATED,
        grant_on_reconnect: Optional[list[str]] = None,
    ):
        self.context = (
            AuthContext(grant_type=grant_type, scopes=list(scopes)) if scopes is not None else None
        )
        self.access_token = "token-1" if scopes is not None else None
        self.grant_on_reconnect = grant_on_reconnect
        self.reconnect_calls: list[list[str]] = []

    async def reconnect(self, scopes):
        self.reconnect_calls.append(list(scopes))
        granted = self.grant_on_reconnect if self.grant_on_reconnect is not None else scopes
        self.context = AuthContext(grant_type=GRANT_DELEGATED, scopes=list(granted))
        self.access_token = f"token-{len(self.reconnect_calls) + 1}"
        return self.access_token


@pytest.fixture
def principal():
    return DirectoryPrincipal(id=USER_ID, user_principal_name=UPN, display_name="Alice")


@pytest.fixture
def output_base():
    return OutputBase(upn=UPN, user_id=USER_ID)


@pytest.fixture
def fake_graph():
    return FakeGraph()
