"""
Base remover class: Abstract interface for all entitlement removers.
Defines the enumerate / check / revoke contract every resource kind follows.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..graph.client import GraphClient
from ..graph.errors import classify, log_descriptor
from .models import (
    DirectoryPrincipal,
    ItemResult,
    OutputBase,
    RemovalAction,
    RemovalResult,
    ResourceType,
    STATUS_LAST_OWNER,
    STATUS_SUCCESS,
    dry_run_status,
    failed_status,
)

logger = logging.getLogger("graphtools.removal")


@dataclass
class Candidate:
    """One grant the principal currently holds."""
    id: str
    name: str
    resource_type: Optional[ResourceType] = None   # Falls back to the remover's
    action: Optional[RemovalAction] = None         # Falls back to the remover's
    collection: str = ""                           # Graph collection the object lives in
    data: dict[str, Any] = field(default_factory=dict)


def parse_items(
    items: list[dict],
    build: Callable[[dict], Candidate],
    kind: str,
) -> list[ItemResult]:
    """
    Turn raw Graph records into candidates. Records without an id become
    error results instead of being dropped.
    """
    parsed = []
    for item in items:
        if not isinstance(item, dict) or not item.get("id"):
            parsed.append(ItemResult(value=item, error=f"Malformed {kind} record: missing id"))
            continue
        parsed.append(ItemResult(value=build(item)))
    return parsed


class BaseRemover(ABC):
    """
    Abstract base class for all removers.

    Subclasses implement enumerate() and revoke(). The base class provides:
      - One result row per enumerated resource
      - One summary row when enumeration itself fails
      - Dry-run handling immediately before the mutating call
      - Cancellation checks between candidates
    """

    key: str = "base"
    description: str = "Base remover"
    resource_type: ResourceType = ResourceType.USER
    action: RemovalAction = RemovalAction.USER_RETRIEVAL
    error_label: str = "resource"

    def __init__(self, graph: GraphClient, cancel: Optional[asyncio.Event] = None):
        self.graph = graph
        self.cancel = cancel or asyncio.Event()

    async def remove(
        self,
        principal: DirectoryPrincipal,
        output_base: OutputBase,
        results: list[RemovalResult],
        dry_run: bool = False,
    ):
        """Enumerate this kind of grant for the principal and revoke each one."""
        upn = principal.user_principal_name
        try:
            items = await self.enumerate(principal)
        except Exception as e:
            descriptor = classify(e, self.error_label)
            log_descriptor(logger, descriptor, f"[{self.key}] Enumeration failed for {upn}")
            results.append(self.row(output_base, "N/A", None, failed_status(descriptor)))
            return

        logger.info(f"[{self.key}] {len(items)} item(s) found for {upn}")

        for item in items:
            if self.cancel.is_set():
                logger.warning(f"[{self.key}] Cancelled; remaining items for {upn} not processed")
                break
            if not item.ok:
                raw = item.value if isinstance(item.value, dict) else {}
                logger.warning(f"[{self.key}] {item.error}")
                results.append(self.row(
                    output_base,
                    raw.get("displayName") or "N/A",
                    None,
                    f"Failed: {item.error}",
                ))
                continue
            await self.process(principal, output_base, results, item.value, dry_run)

    async def process(
        self,
        principal: DirectoryPrincipal,
        output_base: OutputBase,
        results: list[RemovalResult],
        candidate: Candidate,
        dry_run: bool,
    ):
        """Revoke one candidate and record the outcome."""
        action = candidate.action or self.action
        if dry_run:
            logger.info(f"[{self.key}] Dry run: would {action.value} '{candidate.name}'")
            results.append(self.row(output_base, candidate.name, candidate.id,
                                    dry_run_status(action), candidate))
            return

        try:
            await self.revoke(principal, candidate)
        except Exception as e:
            descriptor = classify(e, self.error_label)
            log_descriptor(logger, descriptor, f"[{self.key}] {action.value} '{candidate.name}'")
            results.append(self.row(output_base, candidate.name, candidate.id,
                                    failed_status(descriptor), candidate))
            return

        logger.info(f"[{self.key}] {action.value} '{candidate.name}' for {principal.user_principal_name}")
        results.append(self.row(output_base, candidate.name, candidate.id, STATUS_SUCCESS, candidate))

    def row(
        self,
        output_base: OutputBase,
        resource_name: str,
        resource_id: Optional[str],
        status: str,
        candidate: Optional[Candidate] = None,
    ) -> RemovalResult:
        return RemovalResult.create(
            output_base,
            resource_type=(candidate and candidate.resource_type) or self.resource_type,
            action=(candidate and candidate.action) or self.action,
            resource_name=resource_name,
            resource_id=resource_id,
            status=status,
        )

    @abstractmethod
    async def enumerate(self, principal: DirectoryPrincipal) -> list[ItemResult]:
        """Return the principal's current grants of this kind."""
        raise NotImplementedError

    @abstractmethod
    async def revoke(self, principal: DirectoryPrincipal, candidate: Candidate):
        """Issue the mutating Graph call for one candidate."""
        raise NotImplementedError


class OwnershipRemover(BaseRemover):
    """
    Removes the principal as owner, but never the last one: an object without
    owners can only be administered by directory admins.
    """

    async def owner_ids(self, candidate: Candidate) -> list[str]:
        owners = await self.graph.get_all_pages(
            f"{candidate.collection}/{candidate.id}/owners",
            params={"$select": "id"},
        )
        return [o.get("id") for o in owners]

    async def process(
        self,
        principal: DirectoryPrincipal,
        output_base: OutputBase,
        results: list[RemovalResult],
        candidate: Candidate,
        dry_run: bool,
    ):
        try:
            owners = await self.owner_ids(candidate)
        except Exception as e:
            descriptor = classify(e, self.error_label)
            log_descriptor(logger, descriptor, f"[{self.key}] Owner lookup for '{candidate.name}'")
            results.append(self.row(output_base, candidate.name, candidate.id,
                                    failed_status(descriptor), candidate))
            return

        if len(owners) <= 1:
            logger.warning(
                f"[{self.key}] {principal.user_principal_name} is the last owner of "
                f"'{candidate.name}'; not removing"
            )
            results.append(self.row(output_base, candidate.name, candidate.id,
                                    STATUS_LAST_OWNER, candidate))
            return

        await super().process(principal, output_base, results, candidate, dry_run)

    async def revoke(self, principal: DirectoryPrincipal, candidate: Candidate):
        await self.graph.delete(
            f"{candidate.collection}/{candidate.id}/owners/{principal.id}/$ref"
        )
