"""
Removal data models: the principal being offboarded and the fixed-shape
result row produced for every attempted removal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from ..graph.errors import ErrorDescriptor


class ResourceType(str, Enum):
    GROUP = "Group"
    LICENSE = "License"
    SERVICE_PRINCIPAL = "ServicePrincipal"
    ENTERPRISE_APPLICATION = "EnterpriseApplication"
    APP_REGISTRATION = "AppRegistration"
    USER_APP_ROLE_ASSIGNMENT = "UserAppRoleAssignment"
    DIRECTORY_ROLE = "DirectoryRole"
    ADMINISTRATIVE_UNIT = "AdministrativeUnit"
    ACCESS_PACKAGE_ASSIGNMENT = "AccessPackageAssignment"
    OAUTH2_PERMISSION_GRANT = "OAuth2PermissionGrant"
    PIM_ROLE_ELIGIBILITY = "PIMRoleEligibility"
    USER = "User"


class RemovalAction(str, Enum):
    USER_RETRIEVAL = "UserRetrieval"
    REMOVE_GROUP_MEMBERSHIP = "RemoveGroupMembership"
    REMOVE_GROUP_OWNERSHIP = "RemoveGroupOwnership"
    REMOVE_LICENSES = "RemoveLicenses"
    REMOVE_SERVICE_PRINCIPAL_OWNERSHIP = "RemoveServicePrincipalOwnership"
    REMOVE_ENTERPRISE_APP_OWNERSHIP = "RemoveEnterpriseAppOwnership"
    REMOVE_APP_REGISTRATION_OWNERSHIP = "RemoveAppRegistrationOwnership"
    REMOVE_APP_ROLE_ASSIGNMENT = "RemoveAppRoleAssignment"
    REMOVE_DIRECTORY_ROLE_ASSIGNMENT = "RemoveDirectoryRoleAssignment"
    REMOVE_ADMINISTRATIVE_UNIT_MEMBERSHIP = "RemoveAdministrativeUnitMembership"
    REMOVE_ACCESS_PACKAGE_ASSIGNMENT = "RemoveAccessPackageAssignment"
    REMOVE_OAUTH2_PERMISSION_GRANT = "RemoveOAuth2PermissionGrant"
    REMOVE_PIM_ROLE_ELIGIBILITY = "RemovePIMRoleEligibility"
    REMOVE_PIM_ACTIVE_ASSIGNMENT = "RemovePIMActiveAssignment"


STATUS_SUCCESS = "Success"
STATUS_LAST_OWNER = "Skipped: Last owner"


def failed_status(descriptor: ErrorDescriptor) -> str:
    """`Failed: <reason>`, without doubling the prefix the unmapped reason already has."""
    if descriptor.reason.startswith("Failed:"):
        return descriptor.reason
    return f"Failed: {descriptor.reason}"


def skipped_status(reason: str) -> str:
    return f"Skipped: {reason}"


def dry_run_status(action: RemovalAction) -> str:
    return f"DryRun: Would {action.value}"


def status_category(status: str) -> str:
    """Success / Failed / Skipped / DryRun."""
    return status.split(":", 1)[0].strip()


@dataclass(frozen=True)
class DirectoryPrincipal:
    """The user being offboarded."""
    id: str
    user_principal_name: str
    display_name: Optional[str] = None

    @classmethod
    def from_graph(cls, user: dict) -> "DirectoryPrincipal":
        return cls(
            id=user["id"],
            user_principal_name=user.get("userPrincipalName", ""),
            display_name=user.get("displayName"),
        )


@dataclass(frozen=True)
class OutputBase:
    """Fields shared by every row produced for one UPN."""
    upn: str
    user_id: Optional[str]
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


@dataclass(frozen=True)
class RemovalResult:
    """One attempted removal. Rows are never mutated after creation."""
    upn: str
    user_id: Optional[str]
    timestamp: str
    resource_name: str
    resource_type: ResourceType
    resource_id: Optional[str]
    action: RemovalAction
    status: str

    @classmethod
    def create(
        cls,
        base: OutputBase,
        resource_type: ResourceType,
        action: RemovalAction,
        resource_name: str,
        resource_id: Optional[str],
        status: str,
    ) -> "RemovalResult":
        return cls(
            upn=base.upn,
            user_id=base.user_id,
            timestamp=base.timestamp,
            resource_name=resource_name,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            status=status,
        )

    @property
    def category(self) -> str:
        return status_category(self.status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "UPN": self.upn,
            "UserId": self.user_id,
            "Timestamp": self.timestamp,
            "ResourceName": self.resource_name,
            "ResourceType": self.resource_type.value,
            "ResourceId": self.resource_id,
            "Action": self.action.value,
            "Status": self.status,
        }


@dataclass
class ItemResult:
    """Per-item parse outcome: a value, or the reason the record was unusable."""
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
