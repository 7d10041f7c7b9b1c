"""Reporting package: removal result export."""

from .json_export import export_json
from .csv_export import export_csv, RESULT_FIELDS

__all__ = [
    "export_json",
    "export_csv",
    "RESULT_FIELDS",
]
