"""
Sign-in for GraphTools.

Two flows, both through MSAL: app-only with a certificate (a base64-encoded
PFX on disk) and delegated device-code sign-in. After every token the
granted permissions are read back from the token itself into an AuthContext,
which is what the scope gate checks before any removal runs.
"""

from __future__ import annotations

import base64
import getpass
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat, pkcs12
import msal

from ..config import AuthConfig, CertificateAuth

logger = logging.getLogger("graphtools.auth")

AUTHORITY = "https://login.microsoftonline.com/{tenant_id}"
APP_SCOPES = ["https://graph.microsoft.com/.default"]
CERT_PASSWORD_ENV = "GRAPHTOOLS_CERT_PASSWORD"

# MSAL adds these itself and rejects them in a scope list.
RESERVED_SCOPES = {"openid", "profile", "offline_access"}

GRANT_DELEGATED = "delegated"
GRANT_APPLICATION = "application"


class AuthenticationError(Exception):
    """Raised when no usable token could be obtained."""


@dataclass
class AuthContext:
    """Permissions carried by the current token."""
    grant_type: str
    scopes: list[str] = field(default_factory=list)
    tenant_id: str = ""
    client_id: str = ""
    account: str = ""

    @property
    def is_delegated(self) -> bool:
        return self.grant_type == GRANT_DELEGATED


def decode_token_claims(token: str) -> dict[str, Any]:
    """Unverified JWT payload. Only used to read scopes; Graph does the real validation."""
    try:
        payload = token.split(".")[1]
        payload += "=" * (-len(payload) % 4)
        return json.loads(base64.urlsafe_b64decode(payload.encode("ascii")))
    except (IndexError, ValueError) as e:
        raise AuthenticationError(f"Access token is not a readable JWT: {e}")


def context_from_token(token: str) -> AuthContext:
    """`scp` claims mean a delegated token, otherwise `roles` hold application permissions."""
    claims = decode_token_claims(token)
    delegated = bool(claims.get("scp"))
    return AuthContext(
        grant_type=GRANT_DELEGATED if delegated else GRANT_APPLICATION,
        scopes=str(claims["scp"]).split() if delegated else list(claims.get("roles", [])),
        tenant_id=claims.get("tid", ""),
        client_id=claims.get("appid", claims.get("azp", "")),
        account=claims.get("upn", claims.get("preferred_username", "")) if delegated else "",
    )


def load_pfx_credential(cert_path: str, password: str) -> dict[str, str]:
    """
    Read a base64-encoded PFX and return the MSAL client credential for it
    (PEM private key plus SHA-1 thumbprint).
    """
    try:
        pfx = base64.b64decode(Path(cert_path).read_text().strip())
        key, cert, _ = pkcs12.load_key_and_certificates(pfx, password.encode("utf-8") if password else None)
    except FileNotFoundError:
        raise AuthenticationError(f"Certificate file not found: {cert_path}.")
    except (ValueError, TypeError, OSError) as e:
        raise AuthenticationError(f"Failed to load certificate: {e}")

    if key is None or cert is None:
        raise AuthenticationError("Failed to load certificate: PFX has no key and certificate pair.")

    thumbprint = cert.fingerprint(SHA1()).hex()
    logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")
    return {
        "thumbprint": thumbprint,
        "private_key": key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()).decode("utf-8"),
    }


def _cert_password(cert: CertificateAuth) -> str:
    return (
        cert.certificate_password
        or os.environ.get(CERT_PASSWORD_ENV, "")
        or getpass.getpass("Enter the certificate password: ")
    )


def _token_or_raise(result: dict, flow: str) -> str:
    if "access_token" in result:
        logger.info(f"{flow} authentication successful.")
        return result["access_token"]
    error = result.get("error_description", result.get("error", "Unknown"))
    raise AuthenticationError(f"{flow} auth failed: {error}")


class Authenticator:
    """
    Holds the current token and its AuthContext.

    Delegated sessions keep one PublicClientApplication so that reconnect()
    can reuse the signed-in account silently before falling back to a new
    device-code prompt.
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._access_token: Optional[str] = None
        self._context: Optional[AuthContext] = None
        self._public_app: Optional[msal.PublicClientApplication] = None

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def context(self) -> Optional[AuthContext]:
        return self._context

    async def acquire_token(self) -> str:
        mode = self.config.mode
        if mode == "certificate":
            token = self._acquire_certificate_token()
        elif mode == "delegated":
            token = self._acquire_delegated_token(self.config.delegated.scopes if self.config.delegated else [])
        else:
            raise AuthenticationError(f"Unknown auth mode: {mode}")
        self._set_token(token)
        return token

    async def reconnect(self, scopes: list[str]) -> str:
        """Sign in again asking for `scopes`. Only delegated sessions can do this."""
        if self.config.mode != "delegated":
            raise AuthenticationError(
                "Application permissions cannot be added by reconnecting; "
                "grant admin consent for the missing roles."
            )
        logger.info(f"Reconnecting with {len(scopes)} scopes...")
        token = self._acquire_delegated_token(scopes)
        self._set_token(token)
        return token

    def _set_token(self, token: str):
        self._access_token = token
        self._context = context_from_token(token)
        logger.debug(f"Auth context: {self._context.grant_type}, {len(self._context.scopes)} scopes")

    def _acquire_certificate_token(self) -> str:
        cert = self.config.certificate
        if cert is None:
            raise AuthenticationError("Certificate auth config not provided.")

        logger.info("Authenticating with certificate-based app credentials...")
        app = msal.ConfidentialClientApplication(
            client_id=cert.client_id,
            authority=AUTHORITY.format(tenant_id=cert.tenant_id),
            client_credential=load_pfx_credential(cert.certificate_path, _cert_password(cert)),
        )
        return _token_or_raise(app.acquire_token_for_client(scopes=APP_SCOPES), "Certificate")

    def _acquire_delegated_token(self, scopes: list[str]) -> str:
        delegated = self.config.delegated
        if delegated is None:
            raise AuthenticationError("Delegated auth config not provided.")

        scopes = [s for s in scopes if s.lower() not in RESERVED_SCOPES]
        if self._public_app is None:
            self._public_app = msal.PublicClientApplication(
                client_id=delegated.client_id,
                authority=AUTHORITY.format(tenant_id=delegated.tenant_id),
            )
        app = self._public_app

        for account in app.get_accounts()[:1]:
            cached = app.acquire_token_silent(scopes, account=account)
            if cached and "access_token" in cached:
                logger.info("Delegated token acquired silently.")
                return cached["access_token"]

        logger.info("Initiating device code authentication flow...")
        flow = app.initiate_device_flow(scopes=scopes)
        if "user_code" not in flow:
            raise AuthenticationError(f"Device code flow failed: {flow.get('error_description', 'Unknown')}")

        print(f"\n{'=' * 60}")
        print(f"  To sign in, open: {flow['verification_uri']}")
        print(f"  Enter code: {flow['user_code']}")
        print(f"{'=' * 60}\n")
        return _token_or_raise(app.acquire_token_by_device_flow(flow), "Delegated")
