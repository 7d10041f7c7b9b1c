"""
Entitlement Orchestrator: "offboard these users".

For each UPN: resolve the directory object, run the selected removers in a
fixed order, and collect every result row. Per-user and per-resource
failures become rows; only the up-front precondition checks raise.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, fields
from typing import Iterable, Optional
from urllib.parse import quote

from ..auth.scope_gate import MissingScopesError, ScopeGate
from ..config import RemovalConfig, required_scopes_for
from ..graph.client import GraphClient
from ..graph.errors import classify, log_descriptor
from ..safety.validation import validate_upn
from . import ALL_REMOVERS, REMOVER_KEYS
from .base import BaseRemover
from .models import (
    DirectoryPrincipal,
    OutputBase,
    RemovalAction,
    RemovalResult,
    ResourceType,
    failed_status,
)

logger = logging.getLogger("graphtools.removal.orchestrator")


@dataclass
class RemovalSelection:
    """Which removers to run. `all` selects every one of them."""
    group_memberships: bool = False
    group_ownerships: bool = False
    licenses: bool = False
    service_principal_ownerships: bool = False
    enterprise_app_ownerships: bool = False
    app_role_assignments: bool = False
    directory_roles: bool = False
    pim_roles: bool = False
    administrative_units: bool = False
    access_packages: bool = False
    oauth2_grants: bool = False
    all: bool = False

    @classmethod
    def from_keys(cls, keys: Iterable[str]) -> "RemovalSelection":
        known = {f.name for f in fields(cls)}
        selection = cls()
        for key in keys:
            if key not in known:
                raise ValueError(f"Unknown remover: {key}")
            setattr(selection, key, True)
        return selection

    def selected_keys(self) -> list[str]:
        """Selected remover keys in execution order."""
        return [k for k in REMOVER_KEYS if self.all or getattr(self, k)]


def summarize(results: list[RemovalResult]) -> dict[str, int]:
    """Count rows per status category."""
    counts = Counter(r.category for r in results)
    return {
        "total": len(results),
        "Success": counts.get("Success", 0),
        "Failed": counts.get("Failed", 0),
        "Skipped": counts.get("Skipped", 0),
        "DryRun": counts.get("DryRun", 0),
    }


class EntitlementOrchestrator:
    """Runs the selected removers for each UPN and aggregates the rows."""

    def __init__(
        self,
        graph: GraphClient,
        gate: ScopeGate,
        config: Optional[RemovalConfig] = None,
    ):
        self.graph = graph
        self.gate = gate
        self.config = config or RemovalConfig()

    async def run(
        self,
        upns: Iterable[str],
        selection: RemovalSelection,
        dry_run: Optional[bool] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> list[RemovalResult]:
        """
        Process every UPN and return all result rows in input order.

        Raises InvalidFormatError for a malformed UPN and MissingScopesError
        when the token lacks required scopes, before any remote call.
        """
        upns = list(upns)
        dry_run = self.config.dry_run if dry_run is None else dry_run
        cancel = cancel or asyncio.Event()

        # ── Preconditions ───────────────────────────────────────────────
        for upn in upns:
            validate_upn(upn)

        keys = selection.selected_keys()
        if not keys:
            logger.warning("No removers selected; only user lookups will run")

        required = required_scopes_for(keys)
        if not await self.gate.ensure(required, reconnect=self.config.reconnect):
            check = self.gate.last_check
            raise MissingScopesError(
                check.missing if check else required,
                check.message if check else "",
            )
        self._refresh_token()

        removers = [cls for cls in ALL_REMOVERS if cls.key in keys]
        mode = "DRY RUN" if dry_run else "LIVE"
        logger.info(
            f"[{mode}] Processing {len(upns)} user(s) with {len(removers)} remover(s): "
            f"{', '.join(keys) or 'none'}"
        )

        timer = None
        if self.config.run_timeout:
            timer = asyncio.get_running_loop().call_later(self.config.run_timeout, cancel.set)

        # One buffer per UPN, merged in input order at the end.
        buffers: list[list[RemovalResult]] = [[] for _ in upns]
        try:
            if self.config.max_concurrency <= 1:
                for upn, buffer in zip(upns, buffers):
                    if cancel.is_set():
                        logger.warning(f"Cancelled; {upn} and later users not processed")
                        break
                    await self.process_user(upn, removers, buffer, dry_run, cancel)
            else:
                semaphore = asyncio.Semaphore(self.config.max_concurrency)

                async def worker(upn: str, buffer: list[RemovalResult]):
                    async with semaphore:
                        if cancel.is_set():
                            logger.warning(f"Cancelled; {upn} not processed")
                            return
                        await self.process_user(upn, removers, buffer, dry_run, cancel)

                await asyncio.gather(*(worker(u, b) for u, b in zip(upns, buffers)))
        finally:
            if timer:
                timer.cancel()

        results = [row for buffer in buffers for row in buffer]
        counts = summarize(results)
        logger.info(
            f"[{mode}] Done: {counts['total']} row(s): {counts['Success']} succeeded, "
            f"{counts['Failed']} failed, {counts['Skipped']} skipped, {counts['DryRun']} simulated"
        )
        return results

    async def process_user(
        self,
        upn: str,
        removers: list[type[BaseRemover]],
        results: list[RemovalResult],
        dry_run: bool,
        cancel: asyncio.Event,
    ):
        """Resolve one UPN and run every selected remover against it."""
        try:
            user = await self.graph.get(
                f"users/{quote(upn, safe='@')}",
                params={"$select": "id,displayName,userPrincipalName"},
            )
            principal = DirectoryPrincipal.from_graph(user)
        except Exception as e:
            descriptor = classify(e, "user")
            log_descriptor(logger, descriptor, f"User lookup for {upn}")
            results.append(RemovalResult.create(
                OutputBase(upn=upn, user_id=None),
                resource_type=ResourceType.USER,
                action=RemovalAction.USER_RETRIEVAL,
                resource_name=upn,
                resource_id=None,
                status=failed_status(descriptor),
            ))
            return

        logger.info(f"Processing {upn} ({principal.id})")
        output_base = OutputBase(upn=upn, user_id=principal.id)

        for cls in removers:
            if cancel.is_set():
                logger.warning(f"Cancelled; remaining removers for {upn} not run")
                break
            remover = cls(self.graph, cancel)
            try:
                await remover.remove(principal, output_base, results, dry_run)
            except Exception as e:
                descriptor = classify(e, remover.error_label)
                logger.exception(f"[{remover.key}] Unexpected failure for {upn}")
                results.append(remover.row(output_base, "N/A", None, failed_status(descriptor)))

    def _refresh_token(self):
        """Hand a token obtained by a reconnect to the Graph client."""
        token = self.gate.authenticator.access_token
        if token and token != self.graph.access_token:
            self.graph.set_access_token(token)
