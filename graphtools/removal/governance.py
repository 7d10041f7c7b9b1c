"""
Governance Removers
Administrative unit memberships and access package assignments.
"""

from __future__ import annotations

import logging

from .base import BaseRemover, Candidate, parse_items
from .models import DirectoryPrincipal, ItemResult, RemovalAction, ResourceType
from ..safety.validation import odata_eq

logger = logging.getLogger("graphtools.removal.governance")


class AdministrativeUnitRemover(BaseRemover):
    key = "administrative_units"
    description = "Remove the user from administrative units"
    resource_type = ResourceType.ADMINISTRATIVE_UNIT
    action = RemovalAction.REMOVE_ADMINISTRATIVE_UNIT_MEMBERSHIP
    error_label = "administrative unit"

    async def enumerate(self, principal: DirectoryPrincipal) -> list[ItemResult]:
        units = await self.graph.get_all_pages(
            f"users/{principal.id}/memberOf/microsoft.graph.administrativeUnit",
            params={"$select": "id,displayName"},
        )

        def build(au: dict) -> Candidate:
            return Candidate(id=au["id"], name=au.get("displayName") or au["id"])

        return parse_items(units, build, "administrative unit")

    async def revoke(self, principal: DirectoryPrincipal, candidate: Candidate):
        await self.graph.delete(
            f"directory/administrativeUnits/{candidate.id}/members/{principal.id}/$ref"
        )


class AccessPackageRemover(BaseRemover):
    """
    Delivered access package assignments are revoked by filing an
    adminRemove assignment request; entitlement management then
    removes the underlying resource roles asynchronously.
    """

    key = "access_packages"
    description = "Request removal of delivered access package assignments"
    resource_type = ResourceType.ACCESS_PACKAGE_ASSIGNMENT
    action = RemovalAction.REMOVE_ACCESS_PACKAGE_ASSIGNMENT
    error_label = "access package assignment"

    async def enumerate(self, principal: DirectoryPrincipal) -> list[ItemResult]:
        assignments = await self.graph.get_all_pages(
            "identityGovernance/entitlementManagement/assignments",
            params={
                "$filter": f"{odata_eq('target/objectId', principal.id)} and state eq 'delivered'",
                "$expand": "accessPackage",
            },
        )

        def build(a: dict) -> Candidate:
            package = a.get("accessPackage") or {}
            return Candidate(
                id=a["id"],
                name=package.get("displayName") or a["id"],
                data={"accessPackageId": package.get("id"), "state": a.get("state")},
            )

        return parse_items(assignments, build, "access package assignment")

    async def revoke(self, principal: DirectoryPrincipal, candidate: Candidate):
        await self.graph.post(
            "identityGovernance/entitlementManagement/assignmentRequests",
            json_body={
                "requestType": "adminRemove",
                "assignment": {"id": candidate.id},
            },
        )
