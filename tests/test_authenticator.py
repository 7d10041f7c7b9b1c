"""Tests for graphtools.auth.authenticator."""

import base64
import json
from unittest.mock import MagicMock, patch

import pytest

from graphtools.auth.authenticator import (
    AuthenticationError,
    Authenticator,
    GRANT_APPLICATION,
    GRANT_DELEGATED,
    context_from_token,
    decode_token_claims,
)
from graphtools.config import AuthConfig, CertificateAuth, DelegatedAuth


def make_token(claims: dict) -> str:
    def part(data: dict) -> str:
        raw = base64.urlsafe_b64encode(json.dumps(data).encode()).decode()
        return raw.rstrip("=")
    return f"{part({'alg': 'none'})}.{part(claims)}.sig"


DELEGATED_TOKEN = make_token({
    "scp": "User.Read.All GroupMember.ReadWrite.All",
    "tid": "tenant",
    "appid": "client",
    "upn": "admin@contoso.com",
})
APP_TOKEN = make_token({"roles": ["User.Read.All", "Group.ReadWrite.All"], "tid": "tenant"})


class TestTokenClaims:
    def test_delegated_scopes_from_scp(self):
        ctx = context_from_token(DELEGATED_TOKEN)
        assert ctx.grant_type == GRANT_DELEGATED
        assert ctx.is_delegated
        assert ctx.scopes == ["User.Read.All", "GroupMember.ReadWrite.All"]
        assert ctx.account == "admin@contoso.com"

    def test_application_roles(self):
        ctx = context_from_token(APP_TOKEN)
        assert ctx.grant_type == GRANT_APPLICATION
        assert not ctx.is_delegated
        assert ctx.scopes == ["User.Read.All", "Group.ReadWrite.All"]

    @pytest.mark.parametrize("token", ["", "not-a-jwt", "a.!!!.c"])
    def test_unreadable_token(self, token):
        with pytest.raises(AuthenticationError):
            decode_token_claims(token)


def delegated_config() -> AuthConfig:
    return AuthConfig(
        mode="delegated",
        delegated=DelegatedAuth(tenant_id="tenant", client_id="client", scopes=["User.Read.All"]),
    )


class TestDelegated:
    @pytest.mark.asyncio
    async def test_silent_acquisition_sets_context(self):
        with patch("graphtools.auth.authenticator.msal.PublicClientApplication") as app_cls:
            app = app_cls.return_value
            app.get_accounts.return_value = [{"username": "admin@contoso.com"}]
            app.acquire_token_silent.return_value = {"access_token": DELEGATED_TOKEN}

            auth = Authenticator(delegated_config())
            token = await auth.acquire_token()

        assert token == DELEGATED_TOKEN
        assert auth.access_token == DELEGATED_TOKEN
        assert auth.context.is_delegated
        app.initiate_device_flow.assert_not_called()

    @pytest.mark.asyncio
    async def test_device_flow_when_no_cached_account(self, capsys):
        with patch("graphtools.auth.authenticator.msal.PublicClientApplication") as app_cls:
            app = app_cls.return_value
            app.get_accounts.return_value = []
            app.initiate_device_flow.return_value = {
                "user_code": "ABCD", "verification_uri": "https://microsoft.com/devicelogin",
            }
            app.acquire_token_by_device_flow.return_value = {"access_token": DELEGATED_TOKEN}

            auth = Authenticator(delegated_config())
            await auth.acquire_token()

        assert "ABCD" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_reconnect_requests_scopes_without_reserved(self):
        with patch("graphtools.auth.authenticator.msal.PublicClientApplication") as app_cls:
            app = app_cls.return_value
            app.get_accounts.return_value = [{"username": "admin@contoso.com"}]
            app.acquire_token_silent.return_value = {"access_token": DELEGATED_TOKEN}

            auth = Authenticator(delegated_config())
            await auth.reconnect(["openid", "User.Read.All", "Group.ReadWrite.All", "offline_access"])

        scopes = app.acquire_token_silent.call_args.args[0]
        assert scopes == ["User.Read.All", "Group.ReadWrite.All"]

    @pytest.mark.asyncio
    async def test_device_flow_error(self):
        with patch("graphtools.auth.authenticator.msal.PublicClientApplication") as app_cls:
            app = app_cls.return_value
            app.get_accounts.return_value = []
            app.initiate_device_flow.return_value = {"error_description": "bad client"}

            with pytest.raises(AuthenticationError, match="bad client"):
                await Authenticator(delegated_config()).acquire_token()


class TestCertificate:
    @pytest.mark.asyncio
    async def test_reconnect_refused_for_app_only(self):
        auth = Authenticator(AuthConfig(mode="certificate"))
        with pytest.raises(AuthenticationError, match="admin consent"):
            await auth.reconnect(["User.Read.All"])

    @pytest.mark.asyncio
    async def test_missing_certificate_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GRAPHTOOLS_CERT_PASSWORD", "pw")
        config = AuthConfig(
            mode="certificate",
            certificate=CertificateAuth(
                tenant_id="tenant",
                client_id="client",
                certificate_path=str(tmp_path / "missing.txt"),
            ),
        )
        with pytest.raises(AuthenticationError, match="not found"):
            await Authenticator(config).acquire_token()

    @pytest.mark.asyncio
    async def test_unreadable_certificate(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GRAPHTOOLS_CERT_PASSWORD", "pw")
        cert = tmp_path / "base64.txt"
        cert.write_text(base64.b64encode(b"not a pfx").decode())
        config = AuthConfig(
            mode="certificate",
            certificate=CertificateAuth(tenant_id="t", client_id="c", certificate_path=str(cert)),
        )
        with pytest.raises(AuthenticationError, match="Failed to load certificate"):
            await Authenticator(config).acquire_token()

    @pytest.mark.asyncio
    async def test_unknown_mode(self):
        with pytest.raises(AuthenticationError):
            await Authenticator(AuthConfig(mode="secret")).acquire_token()


def test_msal_failure_surfaces_description():
    app = MagicMock()
    app.get_accounts.return_value = []
    app.initiate_device_flow.return_value = {"user_code": "X", "verification_uri": "u"}
    app.acquire_token_by_device_flow.return_value = {"error": "authorization_declined"}
    auth = Authenticator(delegated_config())
    auth._public_app = app
    with pytest.raises(AuthenticationError, match="authorization_declined"):
        auth._acquire_delegated_token(["User.Read.All"])
