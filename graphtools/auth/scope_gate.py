"""
Scope Gate: Refuses to let a mutating run start unless the current token
grants every required permission. Can reconnect delegated sessions to pick
up missing scopes, and verifies the reconnect actually granted them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .authenticator import Authenticator, AuthenticationError

logger = logging.getLogger("graphtools.auth.scope_gate")

ADMIN_CONSENT_HINT = (
    "Application permissions cannot be added by reconnecting; "
    "grant admin consent for the missing roles."
)


class MissingScopesError(Exception):
    """Raised when a run is refused because required scopes are not granted."""
    def __init__(self, missing: list[str], detail: str = ""):
        self.missing = missing
        message = f"Missing required scopes: {', '.join(missing)}"
        if detail:
            message = f"{message}. {detail}"
        super().__init__(message)


@dataclass
class ScopeCheck:
    grant_type: Optional[str]
    granted: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.grant_type is not None and not self.missing


def _dedupe(scopes: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for scope in scopes:
        if scope.lower() not in seen:
            seen.add(scope.lower())
            ordered.append(scope)
    return ordered


class ScopeGate:
    """Checks the caller's granted scopes against a required set."""

    def __init__(self, authenticator: Authenticator):
        self.authenticator = authenticator
        self.last_check: Optional[ScopeCheck] = None

    def check(self, required: Iterable[str]) -> ScopeCheck:
        """Compare required scopes against the current grant, case-insensitively."""
        required = _dedupe(required)
        context = self.authenticator.context
        if context is None:
            return ScopeCheck(
                grant_type=None,
                missing=required,
                message="No authentication context. Connect to Microsoft Graph first.",
            )

        granted_lower = {s.lower() for s in context.scopes}
        missing = [s for s in required if s.lower() not in granted_lower]
        message = ""
        if missing and context.is_delegated:
            message = f"Missing scopes: {', '.join(missing)}"
        elif missing:
            message = f"Missing application roles: {', '.join(missing)}. {ADMIN_CONSENT_HINT}"
        return ScopeCheck(
            grant_type=context.grant_type,
            granted=list(context.scopes),
            missing=missing,
            message=message,
        )

    async def ensure(
        self,
        required: Iterable[str],
        reconnect: bool = False,
        quiet: bool = False,
    ) -> bool:
        """
        Return True when every required scope is granted.
        Reconnects delegated sessions when asked; app-only sessions need admin action.
        """
        required = _dedupe(required)
        result = self.check(required)
        self.last_check = result

        if result.ok:
            return True

        if result.grant_type is None:
            self._report(result.message, quiet)
            return False

        context = self.authenticator.context
        if not reconnect or context is None or not context.is_delegated:
            self._report(result.message, quiet)
            return False

        wanted = _dedupe(list(context.scopes) + required)
        try:
            await self.authenticator.reconnect(wanted)
        except AuthenticationError as e:
            result.message = f"{result.message}. Reconnect failed: {e}"
            self._report(result.message, quiet)
            return False

        after = self.check(required)
        if after.missing:
            after.message = (
                f"Reconnect completed but did not grant: {', '.join(after.missing)}"
            )
        self.last_check = after
        if not after.ok:
            self._report(after.message, quiet)
            return False

        if not quiet:
            logger.info("Reconnect granted all required scopes.")
        return True

    @staticmethod
    def _report(message: str, quiet: bool):
        if not quiet:
            logger.error(message)
