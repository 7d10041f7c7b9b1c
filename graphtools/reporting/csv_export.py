"""
CSV exporter: One row per attempted removal.
"""

from __future__ import annotations

import csv
from pathlib import Path

from ..removal.models import RemovalResult

RESULT_FIELDS = [
    "UPN", "UserId", "Timestamp", "ResourceName", "ResourceType",
    "ResourceId", "Action", "Status",
]


def export_csv(
    results: list[RemovalResult],
    output_dir: Path,
    run_id: str,
) -> Path:
    """
    Write removal results to a CSV file.

    Returns:
        Path to the created CSV file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"entitlement_removal_{run_id}.csv"

    with open(path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=RESULT_FIELDS)
        writer.writeheader()
        for r in results:
            row = r.to_dict()
            row["ResourceId"] = row["ResourceId"] or ""
            row["UserId"] = row["UserId"] or ""
            writer.writerow(row)

    return path
