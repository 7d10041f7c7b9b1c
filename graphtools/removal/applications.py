"""
Application Removers
Service principal ownership, enterprise app / app registration ownership,
app role assignments, and delegated (OAuth2) permission grants.
"""

from __future__ import annotations

import logging

from .base import BaseRemover, Candidate, OwnershipRemover, parse_items
from .models import DirectoryPrincipal, ItemResult, RemovalAction, ResourceType
from ..graph.errors import classify

logger = logging.getLogger("graphtools.removal.applications")

SERVICE_PRINCIPAL_TYPE = "#microsoft.graph.servicePrincipal"
APPLICATION_TYPE = "#microsoft.graph.application"

# Tag the portal puts on service principals listed under "Enterprise applications".
ENTERPRISE_APP_TAG = "WindowsAzureActiveDirectoryIntegratedApp"


def is_enterprise_app(service_principal: dict) -> bool:
    return ENTERPRISE_APP_TAG in (service_principal.get("tags") or [])


def _service_principal_candidate(sp: dict) -> Candidate:
    return Candidate(
        id=sp["id"],
        name=sp.get("displayName") or sp["id"],
        collection="servicePrincipals",
        data={"appId": sp.get("appId")},
    )


class ServicePrincipalOwnershipRemover(OwnershipRemover):
    key = "service_principal_ownerships"
    description = "Remove the user as owner of service principals that are not enterprise apps"
    resource_type = ResourceType.SERVICE_PRINCIPAL
    action = RemovalAction.REMOVE_SERVICE_PRINCIPAL_OWNERSHIP
    error_label = "service principal"

    async def enumerate(self, principal: DirectoryPrincipal) -> list[ItemResult]:
        sps = await self.graph.get_all_pages(
            f"users/{principal.id}/ownedObjects/microsoft.graph.servicePrincipal",
            params={"$select": "id,displayName,appId,tags"},
        )
        # Enterprise apps belong to EnterpriseAppOwnershipRemover.
        others = [sp for sp in sps if not is_enterprise_app(sp)]
        return parse_items(others, _service_principal_candidate, "service principal")


class EnterpriseAppOwnershipRemover(OwnershipRemover):
    """
    Enterprise applications and app registrations come from a single
    ownedObjects query, partitioned by @odata.type.
    """

    key = "enterprise_app_ownerships"
    description = "Remove the user as owner of enterprise apps and app registrations"
    resource_type = ResourceType.ENTERPRISE_APPLICATION
    action = RemovalAction.REMOVE_ENTERPRISE_APP_OWNERSHIP
    error_label = "application"

    async def enumerate(self, principal: DirectoryPrincipal) -> list[ItemResult]:
        owned = await self.graph.get_all_pages(
            f"users/{principal.id}/ownedObjects",
            params={"$select": "id,displayName,appId,tags"},
        )

        enterprise_apps = [
            o for o in owned
            if o.get("@odata.type") == SERVICE_PRINCIPAL_TYPE and is_enterprise_app(o)
        ]
        registrations = [o for o in owned if o.get("@odata.type") == APPLICATION_TYPE]
        logger.debug(
            f"{principal.user_principal_name} owns {len(enterprise_apps)} enterprise app(s) "
            f"and {len(registrations)} app registration(s)"
        )

        def enterprise(sp: dict) -> Candidate:
            return Candidate(
                id=sp["id"],
                name=sp.get("displayName") or sp["id"],
                resource_type=ResourceType.ENTERPRISE_APPLICATION,
                action=RemovalAction.REMOVE_ENTERPRISE_APP_OWNERSHIP,
                collection="servicePrincipals",
                data={"appId": sp.get("appId")},
            )

        def registration(app: dict) -> Candidate:
            return Candidate(
                id=app["id"],
                name=app.get("displayName") or app["id"],
                resource_type=ResourceType.APP_REGISTRATION,
                action=RemovalAction.REMOVE_APP_REGISTRATION_OWNERSHIP,
                collection="applications",
                data={"appId": app.get("appId")},
            )

        return (
            parse_items(enterprise_apps, enterprise, "enterprise application")
            + parse_items(registrations, registration, "app registration")
        )


class AppRoleAssignmentRemover(BaseRemover):
    key = "app_role_assignments"
    description = "Remove app role assignments granted directly to the user"
    resource_type = ResourceType.USER_APP_ROLE_ASSIGNMENT
    action = RemovalAction.REMOVE_APP_ROLE_ASSIGNMENT
    error_label = "app role assignment"

    async def enumerate(self, principal: DirectoryPrincipal) -> list[ItemResult]:
        assignments = await self.graph.get_all_pages(
            f"users/{principal.id}/appRoleAssignments",
        )

        def build(a: dict) -> Candidate:
            return Candidate(
                id=a["id"],
                name=a.get("resourceDisplayName") or a.get("resourceId") or a["id"],
                data={"resourceId": a.get("resourceId"), "appRoleId": a.get("appRoleId")},
            )

        return parse_items(assignments, build, "app role assignment")

    async def revoke(self, principal: DirectoryPrincipal, candidate: Candidate):
        await self.graph.delete(f"users/{principal.id}/appRoleAssignments/{candidate.id}")


class OAuth2GrantRemover(BaseRemover):
    key = "oauth2_grants"
    description = "Revoke delegated permission grants the user consented to"
    resource_type = ResourceType.OAUTH2_PERMISSION_GRANT
    action = RemovalAction.REMOVE_OAUTH2_PERMISSION_GRANT
    error_label = "permission grant"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._app_names: dict[str, str] = {}

    async def app_name(self, client_id: str) -> str:
        """Best-effort display name of the client service principal."""
        if not client_id:
            return "App-unknown"
        if client_id in self._app_names:
            return self._app_names[client_id]
        try:
            sp = await self.graph.get(
                f"servicePrincipals/{client_id}",
                params={"$select": "id,displayName"},
            )
            name = sp.get("displayName") or f"App-{client_id}"
        except Exception as e:
            descriptor = classify(e, "service principal")
            logger.debug(f"Could not resolve client {client_id}: {descriptor.error_message}")
            name = f"App-{client_id}"
        self._app_names[client_id] = name
        return name

    async def enumerate(self, principal: DirectoryPrincipal) -> list[ItemResult]:
        grants = await self.graph.get_all_pages(
            f"users/{principal.id}/oauth2PermissionGrants",
        )
        parsed = []
        for g in grants:
            if not g.get("id"):
                parsed.append(ItemResult(value=g, error="Malformed permission grant record: missing id"))
                continue
            client_id = g.get("clientId", "")
            parsed.append(ItemResult(value=Candidate(
                id=g["id"],
                name=await self.app_name(client_id),
                data={"clientId": client_id, "scope": g.get("scope", "")},
            )))
        return parsed

    async def revoke(self, principal: DirectoryPrincipal, candidate: Candidate):
        logger.debug(
            f"Revoking grant {candidate.id} ({candidate.data.get('scope', '').strip()}) "
            f"for {principal.user_principal_name}"
        )
        await self.graph.delete(f"oauth2PermissionGrants/{candidate.id}")
