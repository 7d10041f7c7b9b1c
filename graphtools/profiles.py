"""
Named tenant profiles, so `--profile contoso-prod` is enough to pick the
tenant, app registration and sign-in method for a removal run.

Stored as JSON in ~/.graphtools/profiles.json:

    {
      "default_profile": "contoso-prod",
      "profiles": {
        "contoso-prod": {"tenant_id": "...", "client_id": "...", "auth_mode": "delegated", ...}
      }
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger("graphtools.profiles")

_CONFIG_DIR = Path.home() / ".graphtools"
_PROFILES_FILE = _CONFIG_DIR / "profiles.json"

# "certificate" = app-only with a PFX, "delegated" = device-code sign-in
AUTH_MODES = ("certificate", "delegated")


@dataclass
class TenantProfile:
    name: str
    tenant_id: str
    client_id: str
    auth_mode: str = "certificate"
    cert_path: str = "./base64.txt"     # only read in certificate mode
    tenant_display_name: str = ""
    notes: str = ""

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "TenantProfile":
        known = {f.name for f in fields(cls)} - {"name"}
        return cls(name=name, **{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("name")
        return data

    def resolve_cert_path(self) -> str:
        """Absolute certificate path; relative paths are taken from the working directory."""
        path = Path(self.cert_path).expanduser()
        return str(path if path.is_absolute() else Path.cwd() / path)


@dataclass
class ProfileStore:
    """All saved profiles plus the name of the default one."""
    profiles: dict[str, TenantProfile] = field(default_factory=dict)
    default_profile: str = ""
    path: Path = _PROFILES_FILE

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ProfileStore":
        """Read the store; a missing or unreadable file gives an empty one."""
        path = path or _PROFILES_FILE
        if not path.exists():
            return cls(path=path)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            profiles = {
                name: TenantProfile.from_dict(name, data)
                for name, data in raw.get("profiles", {}).items()
            }
        except (json.JSONDecodeError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable profile file {path}: {e}")
            return cls(path=path)
        return cls(profiles=profiles, default_profile=raw.get("default_profile", ""), path=path)

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "default_profile": self.default_profile,
            "profiles": {name: p.to_dict() for name, p in self.profiles.items()},
        }
        self.path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    def add(self, profile: TenantProfile, set_default: bool = False) -> None:
        """Insert or replace a profile. The first profile saved becomes the default."""
        if profile.auth_mode not in AUTH_MODES:
            raise ValueError(f"auth_mode must be one of {AUTH_MODES}, got {profile.auth_mode!r}")
        self.profiles[profile.name] = profile
        if set_default or not self.default_profile:
            self.default_profile = profile.name
        self.save()

    def remove(self, name: str) -> bool:
        if self.profiles.pop(name, None) is None:
            return False
        if self.default_profile == name:
            self.default_profile = next(iter(self.profiles), "")
        self.save()
        return True

    def get(self, name: str) -> Optional[TenantProfile]:
        """Case-insensitive lookup."""
        wanted = name.lower()
        return next((p for n, p in self.profiles.items() if n.lower() == wanted), None)

    def get_default(self) -> Optional[TenantProfile]:
        if self.default_profile in self.profiles:
            return self.profiles[self.default_profile]
        return next(iter(self.profiles.values()), None)

    def set_default(self, name: str) -> bool:
        if name not in self.profiles:
            return False
        self.default_profile = name
        self.save()
        return True

    def list_profiles(self) -> list[TenantProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.name)


def resolve_profile(
    profile_name: Optional[str] = None,
    path: Optional[Path] = None,
) -> Optional[TenantProfile]:
    """The named profile, or the default one when no name is given."""
    store = ProfileStore.load(path)
    return store.get(profile_name) if profile_name else store.get_default()
