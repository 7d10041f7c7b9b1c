"""
JSON exporter: Writes the full removal run: metadata, summary, every
result row and the Safety Guardian audit record.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .. import __version__
from ..removal.models import RemovalResult
from ..removal.orchestrator import summarize


def export_json(
    results: list[RemovalResult],
    audit: Optional[dict],
    output_dir: Path,
    run_id: str,
    dry_run: bool = False,
) -> Path:
    """
    Write removal results to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "metadata": {
            "tool": "GraphTools Entitlement Removal",
            "version": __version__,
            "run_id": run_id,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            "mode": "DRY-RUN" if dry_run else "LIVE",
            "users": sorted({r.upn for r in results}),
        },
        "summary": summarize(results),
        "results": [r.to_dict() for r in results],
        "audit": audit or {},
    }

    filepath = output_dir / f"entitlement_removal_{run_id}.json"

    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
