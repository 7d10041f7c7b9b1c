"""
Safety Guardian: the gatekeeper in front of every mutating Graph request.

In dry-run mode no write leaves the process. In live mode only the
entitlement-removal endpoints below may be written to, and each permitted
write is kept in the audit record that ends up in the JSON report.
"""

from __future__ import annotations

import logging
import re
import sys
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("graphtools.safety")

READ_METHODS = {"GET", "HEAD", "OPTIONS"}
WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

_GUID = r"[0-9a-fA-F-]{36}"
_KEY = r"[\w-]+"

# (method, path pattern) for every write GraphTools issues.
ALLOWED_WRITE_ENDPOINTS = [
    ("DELETE", re.compile(rf"/groups/{_GUID}/members/{_GUID}/\$ref$")),
    ("DELETE", re.compile(rf"/groups/{_GUID}/owners/{_GUID}/\$ref$")),
    ("DELETE", re.compile(rf"/servicePrincipals/{_GUID}/owners/{_GUID}/\$ref$")),
    ("DELETE", re.compile(rf"/applications/{_GUID}/owners/{_GUID}/\$ref$")),
    ("DELETE", re.compile(rf"/users/{_GUID}/appRoleAssignments/{_KEY}$")),
    ("DELETE", re.compile(rf"/roleManagement/directory/roleAssignments/{_KEY}$")),
    ("DELETE", re.compile(rf"/directory/administrativeUnits/{_GUID}/members/{_GUID}/\$ref$")),
    ("DELETE", re.compile(rf"/oauth2PermissionGrants/{_KEY}$")),
    ("POST", re.compile(rf"/users/{_GUID}/assignLicense$")),
    ("POST", re.compile(r"/identityGovernance/entitlementManagement/assignmentRequests$")),
    ("POST", re.compile(r"/roleManagement/directory/roleEligibilityScheduleRequests$")),
    ("POST", re.compile(r"/roleManagement/directory/roleAssignmentScheduleRequests$")),
]


class SafetyViolation(Exception):
    """A write the guardian refused to let through."""


def is_allowed_write(method: str, url: str) -> bool:
    path = url.split("?", 1)[0]
    return any(method == m and pattern.search(path) for m, pattern in ALLOWED_WRITE_ENDPOINTS)


class SafetyGuardian:
    """Approves or refuses each outbound request and keeps the audit trail."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run
        self.started_at = _utcnow()
        self.checks_performed = 0
        self.mutations: list[dict] = []
        self.violations: list[dict] = []

    def validate_request(self, method: str, url: str, body: Optional[dict] = None) -> bool:
        """True when the request may be sent; raises SafetyViolation otherwise."""
        self.checks_performed += 1
        verb = method.upper()
        if verb in READ_METHODS:
            return True

        if verb not in WRITE_METHODS:
            reason = "Unknown HTTP method"
        elif self.dry_run:
            reason = "Write attempted during dry run"
        elif is_allowed_write(verb, url):
            self.mutations.append({"timestamp": _utcnow(), "method": verb, "url": url, "body": body})
            logger.info(f"Mutation permitted: {verb} {url}")
            return True
        else:
            reason = "Write outside the removal allowlist"

        self.violations.append({"timestamp": _utcnow(), "method": verb, "url": url, "reason": reason})
        logger.critical(f"SAFETY VIOLATION: {reason}: {verb} {url}")
        raise SafetyViolation(f"SAFETY VIOLATION: {reason}: {verb} {url}")

    def get_audit_record(self) -> dict:
        return {
            "safety_guardian": {
                "mode": "DRY-RUN" if self.dry_run else "LIVE",
                "started_at": self.started_at,
                "checks_performed": self.checks_performed,
                "mutations_performed": len(self.mutations),
                "mutations": self.mutations,
                "violations_detected": len(self.violations),
                "violations": self.violations,
                "status": "VIOLATIONS_DETECTED" if self.violations else "CLEAN",
            }
        }

    def print_banner(self):
        encoding = (getattr(sys.stdout, "encoding", "") or "").lower().replace("-", "")
        fancy = sys.stdout.isatty() and encoding.startswith("utf")
        rule = ("═" if fancy else "=") * 75

        if self.dry_run:
            body = (
                "  DRY RUN -- NO CHANGES WILL BE MADE",
                "  * Entitlements are enumerated and last-owner checks still run",
                "  * Every write request is blocked by the Safety Guardian",
            )
        else:
            body = (
                "  LIVE RUN -- ENTITLEMENTS WILL BE REMOVED FROM THE TENANT",
                "  * Only entitlement-removal endpoints may be written to",
                "  * Every mutation is validated and recorded for audit",
            )
        print("\n".join((rule, *body, rule)))


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
