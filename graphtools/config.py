"""
GraphTools configuration: how to sign in, how to talk to Graph, which
permissions each remover needs, and how a removal run behaves.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


# ─── Sign-in ────────────────────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    """App-only sign-in with a base64-encoded PFX."""
    tenant_id: str
    client_id: str
    certificate_path: str = "./base64.txt"
    certificate_password: str = ""     # falls back to GRAPHTOOLS_CERT_PASSWORD, then a prompt


@dataclass
class DelegatedAuth:
    """Device-code sign-in as an administrator."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: list(BASE_SCOPES))


@dataclass
class AuthConfig:
    mode: str = "certificate"          # "certificate" | "delegated"
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None


# ─── Microsoft Graph ────────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"
GRAPH_BETA_VERSION = "beta"

MAX_CONCURRENT_REQUESTS = 4        # in-flight Graph requests per client
MAX_RETRIES = 5                    # for 429 / 503 / 504 and transport errors
INITIAL_BACKOFF_SECONDS = 2.0
MAX_BACKOFF_SECONDS = 120.0
BACKOFF_MULTIPLIER = 2.0

REQUEST_TIMEOUT_SECONDS = 60.0
CONNECT_TIMEOUT_SECONDS = 30.0

DEFAULT_PAGE_SIZE = 999            # largest $top Graph accepts
MAX_PAGES_PER_ENDPOINT = 10000


# ─── Permissions ────────────────────────────────────────────────────────────

# Resolving the UPN happens before any remover runs.
BASE_SCOPES = ["User.Read.All"]

REMOVAL_SCOPES: dict[str, list[str]] = {
    "group_memberships": ["GroupMember.ReadWrite.All"],
    "group_ownerships": ["Group.ReadWrite.All"],
    "licenses": ["User.ReadWrite.All"],
    "service_principal_ownerships": ["Application.ReadWrite.All"],
    "enterprise_app_ownerships": ["Application.ReadWrite.All"],
    "app_role_assignments": ["AppRoleAssignment.ReadWrite.All"],
    "directory_roles": ["RoleManagement.ReadWrite.Directory"],
    "administrative_units": ["AdministrativeUnit.ReadWrite.All"],
    "access_packages": ["EntitlementManagement.ReadWrite.All"],
    "oauth2_grants": ["DelegatedPermissionGrant.ReadWrite.All"],
    "pim_roles": [
        "RoleEligibilitySchedule.ReadWrite.Directory",
        "RoleAssignmentSchedule.ReadWrite.Directory",
    ],
}


def required_scopes_for(keys: list[str]) -> list[str]:
    """BASE_SCOPES plus the scopes of each remover key, first occurrence wins (case-insensitive)."""
    scopes: list[str] = []
    seen: set[str] = set()
    for scope in BASE_SCOPES + [s for k in keys for s in REMOVAL_SCOPES.get(k, [])]:
        if scope.lower() not in seen:
            seen.add(scope.lower())
            scopes.append(scope)
    return scopes


# ─── Run behaviour ──────────────────────────────────────────────────────────

@dataclass
class RemovalConfig:
    dry_run: bool = False
    reconnect: bool = False               # delegated only: sign in again for missing scopes
    max_concurrency: int = 1              # users in flight; 1 keeps the run sequential
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    run_timeout: Optional[float] = None   # seconds before remaining work is cancelled


@dataclass
class OutputConfig:
    base_dir: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: ["json", "csv"])

    def __post_init__(self):
        self.timestamp = self.timestamp or datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        self.base_dir = self.base_dir or str(Path.cwd() / f"graphtools_removal_{self.timestamp}")

    @property
    def run_dir(self) -> Path:
        return Path(self.base_dir)


def _apply(target: Any, values: dict):
    """Copy known keys from a JSON section onto a config dataclass."""
    names = {f.name for f in fields(target)}
    for key, value in values.items():
        if key in names:
            setattr(target, key, value)


@dataclass
class EngineConfig:
    auth: AuthConfig = field(default_factory=AuthConfig)
    removal: RemovalConfig = field(default_factory=RemovalConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str | Path) -> "EngineConfig":
        """
        Load a JSON config file with optional "auth", "removal" and "output"
        sections. Unknown keys are ignored.
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        config = cls(verbose=bool(data.get("verbose", False)))

        auth = data.get("auth", {})
        config.auth.mode = auth.get("mode", config.auth.mode)
        if "certificate" in auth:
            cert = auth["certificate"]
            config.auth.certificate = CertificateAuth(
                tenant_id=cert["tenant_id"],
                client_id=cert["client_id"],
                certificate_path=cert.get("certificate_path", "./base64.txt"),
                certificate_password=cert.get("certificate_password", ""),
            )
        if "delegated" in auth:
            deleg = auth["delegated"]
            config.auth.delegated = DelegatedAuth(
                tenant_id=deleg["tenant_id"],
                client_id=deleg["client_id"],
                scopes=deleg.get("scopes", list(BASE_SCOPES)),
            )

        _apply(config.removal, data.get("removal", {}))
        _apply(config.output, data.get("output", {}))
        return config
