"""
Role Removers
Directory role assignments and PIM role schedules (eligible and active).
"""

from __future__ import annotations

import logging

from .base import BaseRemover, Candidate, parse_items
from .models import DirectoryPrincipal, ItemResult, RemovalAction, ResourceType
from ..safety.validation import odata_eq

logger = logging.getLogger("graphtools.removal.roles")

ADMIN_REMOVE_JUSTIFICATION = "Entitlement removal during offboarding / incident response"


def _role_name(item: dict) -> str:
    role = item.get("roleDefinition") or {}
    return role.get("displayName") or item.get("roleDefinitionId") or item.get("id", "")


class DirectoryRoleRemover(BaseRemover):
    key = "directory_roles"
    description = "Remove directory role assignments"
    resource_type = ResourceType.DIRECTORY_ROLE
    action = RemovalAction.REMOVE_DIRECTORY_ROLE_ASSIGNMENT
    error_label = "role assignment"

    async def enumerate(self, principal: DirectoryPrincipal) -> list[ItemResult]:
        assignments = await self.graph.get_all_pages(
            "roleManagement/directory/roleAssignments",
            params={
                "$filter": odata_eq("principalId", principal.id),
                "$expand": "roleDefinition",
            },
            skip_top=True,
        )

        def build(a: dict) -> Candidate:
            return Candidate(
                id=a["id"],
                name=_role_name(a),
                data={
                    "roleDefinitionId": a.get("roleDefinitionId"),
                    "directoryScopeId": a.get("directoryScopeId", "/"),
                },
            )

        return parse_items(assignments, build, "role assignment")

    async def revoke(self, principal: DirectoryPrincipal, candidate: Candidate):
        await self.graph.delete(f"roleManagement/directory/roleAssignments/{candidate.id}")


class PIMRoleRemover(BaseRemover):
    """
    Removes both eligibility schedules and active assignment schedules.
    Leaving either behind leaves a path back to the role.
    """

    key = "pim_roles"
    description = "Remove PIM role eligibilities and active role assignment schedules"
    resource_type = ResourceType.PIM_ROLE_ELIGIBILITY
    action = RemovalAction.REMOVE_PIM_ROLE_ELIGIBILITY
    error_label = "role eligibility"

    async def enumerate(self, principal: DirectoryPrincipal) -> list[ItemResult]:
        principal_filter = odata_eq("principalId", principal.id)
        eligible = await self.graph.get_all_pages(
            "roleManagement/directory/roleEligibilitySchedules",
            params={"$filter": principal_filter, "$expand": "roleDefinition"},
            skip_top=True,
        )
        active = await self.graph.get_all_pages(
            "roleManagement/directory/roleAssignmentSchedules",
            params={"$filter": principal_filter, "$expand": "roleDefinition"},
            skip_top=True,
        )

        def build(action: RemovalAction):
            def _build(s: dict) -> Candidate:
                return Candidate(
                    id=s["id"],
                    name=_role_name(s),
                    action=action,
                    data={
                        "roleDefinitionId": s.get("roleDefinitionId"),
                        "directoryScopeId": s.get("directoryScopeId") or "/",
                        "assignmentType": s.get("assignmentType"),
                    },
                )
            return _build

        return (
            parse_items(eligible, build(RemovalAction.REMOVE_PIM_ROLE_ELIGIBILITY), "role eligibility")
            + parse_items(active, build(RemovalAction.REMOVE_PIM_ACTIVE_ASSIGNMENT), "role assignment schedule")
        )

    async def revoke(self, principal: DirectoryPrincipal, candidate: Candidate):
        if candidate.action == RemovalAction.REMOVE_PIM_ACTIVE_ASSIGNMENT:
            endpoint = "roleManagement/directory/roleAssignmentScheduleRequests"
        else:
            endpoint = "roleManagement/directory/roleEligibilityScheduleRequests"
        await self.graph.post(
            endpoint,
            json_body={
                "action": "adminRemove",
                "principalId": principal.id,
                "roleDefinitionId": candidate.data["roleDefinitionId"],
                "directoryScopeId": candidate.data["directoryScopeId"],
                "justification": ADMIN_REMOVE_JUSTIFICATION,
            },
        )
