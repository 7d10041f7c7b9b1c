"""
Group Removers
Group memberships (assigned groups only) and group ownerships.
"""

from __future__ import annotations

import logging

from .base import BaseRemover, Candidate, OwnershipRemover, parse_items
from .models import DirectoryPrincipal, RemovalAction, ResourceType

logger = logging.getLogger("graphtools.removal.groups")


def _group_candidate(group: dict) -> Candidate:
    return Candidate(
        id=group["id"],
        name=group.get("displayName") or group["id"],
        collection="groups",
        data={"groupTypes": group.get("groupTypes", [])},
    )


def is_dynamic(group: dict) -> bool:
    """Dynamic groups compute membership from a rule and reject manual changes."""
    return "DynamicMembership" in (group.get("groupTypes") or [])


class GroupMembershipRemover(BaseRemover):
    key = "group_memberships"
    description = "Remove the user from every assigned-membership group"
    resource_type = ResourceType.GROUP
    action = RemovalAction.REMOVE_GROUP_MEMBERSHIP
    error_label = "group"

    async def enumerate(self, principal: DirectoryPrincipal):
        groups = await self.graph.get_all_pages(
            f"users/{principal.id}/transitiveMemberOf/microsoft.graph.group",
            params={"$select": "id,displayName,groupTypes"},
        )
        assigned = [g for g in groups if not is_dynamic(g)]
        skipped = len(groups) - len(assigned)
        if skipped:
            logger.info(f"Excluded {skipped} dynamic group(s) for {principal.user_principal_name}")
        return parse_items(assigned, _group_candidate, "group")

    async def revoke(self, principal: DirectoryPrincipal, candidate: Candidate):
        await self.graph.delete(f"groups/{candidate.id}/members/{principal.id}/$ref")


class GroupOwnershipRemover(OwnershipRemover):
    key = "group_ownerships"
    description = "Remove the user as owner of groups, keeping at least one owner"
    resource_type = ResourceType.GROUP
    action = RemovalAction.REMOVE_GROUP_OWNERSHIP
    error_label = "group"

    async def enumerate(self, principal: DirectoryPrincipal):
        groups = await self.graph.get_all_pages(
            f"users/{principal.id}/ownedObjects/microsoft.graph.group",
            params={"$select": "id,displayName,groupTypes"},
        )
        return parse_items(groups, _group_candidate, "group")
