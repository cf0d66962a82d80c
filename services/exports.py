"""CSV / JSON export of the core practice records."""

from __future__ import annotations

import csv
import io
import json
from datetime import date
from typing import Any, Dict, List, Mapping, Union

from services.repository import RecordRepository

EXPORT_KINDS = ("customers", "cases", "engagements", "all")
EXPORT_FORMATS = ("csv", "json")

ExportData = Union[List[Dict[str, Any]], Dict[str, List[Dict[str, Any]]]]


class ExportError(ValueError):
    """Raised for an unknown export type or format."""


def export_rows(repositories: Mapping[str, RecordRepository], kind: str) -> ExportData:
    if kind not in EXPORT_KINDS:
        raise ExportError("Invalid export type")
    if kind == "all":
        return {name: repositories[name].all() for name in EXPORT_KINDS if name != "all"}
    return repositories[kind].all()


def to_csv(rows: List[Dict[str, Any]]) -> str:
    """Render rows as CSV with every value quoted and ``None`` left empty."""
    if not rows:
        return ""
    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer,
        fieldnames=list(rows[0].keys()),
        quoting=csv.QUOTE_ALL,
        lineterminator="\n",
        extrasaction="ignore",
    )
    writer.writeheader()
    for row in rows:
        writer.writerow({key: "" if value is None else value for key, value in row.items()})
    return buffer.getvalue()


def render_export(repositories: Mapping[str, RecordRepository], kind: str, fmt: str) -> tuple[str, str, str]:
    """Return ``(body, mimetype, filename)`` for an export request."""
    if fmt not in EXPORT_FORMATS:
        raise ExportError("Invalid format")
    if kind == "all" and fmt == "csv":
        raise ExportError('Export type "all" is only available in JSON format')

    data = export_rows(repositories, kind)
    stem = "all_data" if kind == "all" else kind
    filename = f"{stem}_export_{date.today().isoformat()}.{fmt}"
    if fmt == "json":
        return json.dumps(data, indent=2, default=str), "application/json", filename
    return to_csv(data), "text/csv", filename
