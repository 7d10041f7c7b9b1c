"""
License Remover
All directly assigned licenses are removed in one assignLicense call and
reported as a single row.
"""

from __future__ import annotations

import logging

from .base import BaseRemover, Candidate
from .models import (
    DirectoryPrincipal,
    ItemResult,
    OutputBase,
    RemovalAction,
    RemovalResult,
    ResourceType,
    STATUS_SUCCESS,
    dry_run_status,
    failed_status,
)
from ..graph.errors import classify, log_descriptor

logger = logging.getLogger("graphtools.removal.licenses")


class LicenseRemover(BaseRemover):
    key = "licenses"
    description = "Remove every assigned license in one batch"
    resource_type = ResourceType.LICENSE
    action = RemovalAction.REMOVE_LICENSES
    error_label = "license"

    async def enumerate(self, principal: DirectoryPrincipal) -> list[ItemResult]:
        details = await self.graph.get_all_pages(
            f"users/{principal.id}/licenseDetails",
            params={"$select": "id,skuId,skuPartNumber"},
        )
        parsed = []
        for d in details:
            if not d.get("skuId"):
                parsed.append(ItemResult(value=d, error="Malformed license record: missing skuId"))
                continue
            parsed.append(ItemResult(value=Candidate(
                id=d["skuId"],
                name=d.get("skuPartNumber") or d["skuId"],
            )))
        return parsed

    async def remove(
        self,
        principal: DirectoryPrincipal,
        output_base: OutputBase,
        results: list[RemovalResult],
        dry_run: bool = False,
    ):
        upn = principal.user_principal_name
        try:
            items = await self.enumerate(principal)
        except Exception as e:
            descriptor = classify(e, self.error_label)
            log_descriptor(logger, descriptor, f"[{self.key}] Enumeration failed for {upn}")
            results.append(self.row(output_base, "N/A", None, failed_status(descriptor)))
            return

        for item in items:
            if not item.ok:
                logger.warning(f"[{self.key}] {item.error}")
                results.append(self.row(output_base, "N/A", None, f"Failed: {item.error}"))

        licenses = [i.value for i in items if i.ok]
        if not licenses:
            logger.info(f"[{self.key}] No licenses assigned to {upn}")
            return
        if self.cancel.is_set():
            logger.warning(f"[{self.key}] Cancelled before license removal for {upn}")
            return

        sku_ids = [c.id for c in licenses]
        names = ", ".join(c.name for c in licenses)
        joined_ids = ",".join(sku_ids)

        if dry_run:
            logger.info(f"[{self.key}] Dry run: would remove {len(sku_ids)} license(s) from {upn}")
            results.append(self.row(output_base, names, joined_ids, dry_run_status(self.action)))
            return

        try:
            await self.revoke(principal, Candidate(id=joined_ids, name=names))
        except Exception as e:
            descriptor = classify(e, self.error_label)
            log_descriptor(logger, descriptor, f"[{self.key}] License removal for {upn}")
            results.append(self.row(output_base, names, joined_ids, failed_status(descriptor)))
            return

        logger.info(f"[{self.key}] Removed {len(sku_ids)} license(s) from {upn}: {names}")
        results.append(self.row(output_base, names, joined_ids, STATUS_SUCCESS))

    async def revoke(self, principal: DirectoryPrincipal, candidate: Candidate):
        await self.graph.post(
            f"users/{principal.id}/assignLicense",
            json_body={
                "addLicenses": [],
                "removeLicenses": candidate.id.split(","),
            },
        )
