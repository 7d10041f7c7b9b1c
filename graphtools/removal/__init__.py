from .base import BaseRemover, Candidate, OwnershipRemover
from .groups import GroupMembershipRemover, GroupOwnershipRemover
from .licenses import LicenseRemover
from .applications import (
    ServicePrincipalOwnershipRemover,
    EnterpriseAppOwnershipRemover,
    AppRoleAssignmentRemover,
    OAuth2GrantRemover,
)
from .roles import DirectoryRoleRemover, PIMRoleRemover
from .governance import AdministrativeUnitRemover, AccessPackageRemover
from .models import (
    DirectoryPrincipal,
    OutputBase,
    RemovalAction,
    RemovalResult,
    ResourceType,
)

# Execution order. Role assignments go before administrative unit
# membership so scoped admin rights are stripped first.
ALL_REMOVERS = [
    GroupMembershipRemover,
    GroupOwnershipRemover,
    LicenseRemover,
    ServicePrincipalOwnershipRemover,
    EnterpriseAppOwnershipRemover,
    AppRoleAssignmentRemover,
    DirectoryRoleRemover,
    PIMRoleRemover,
    AdministrativeUnitRemover,
    AccessPackageRemover,
    OAuth2GrantRemover,
]

REMOVER_KEYS = [cls.key for cls in ALL_REMOVERS]

__all__ = [
    "BaseRemover",
    "Candidate",
    "OwnershipRemover",
    "GroupMembershipRemover",
    "GroupOwnershipRemover",
    "LicenseRemover",
    "ServicePrincipalOwnershipRemover",
    "EnterpriseAppOwnershipRemover",
    "AppRoleAssignmentRemover",
    "OAuth2GrantRemover",
    "DirectoryRoleRemover",
    "PIMRoleRemover",
    "AdministrativeUnitRemover",
    "AccessPackageRemover",
    "DirectoryPrincipal",
    "OutputBase",
    "RemovalAction",
    "RemovalResult",
    "ResourceType",
    "ALL_REMOVERS",
    "REMOVER_KEYS",
]
