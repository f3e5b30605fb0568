"""
Snapshot export to downloadable files.

JSON exports carry the full snapshot. CSV exports flatten one entity type
into a spreadsheet with a fixed set of columns; only members, groups,
territories and reports can be exported as CSV.
"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from congregation_backup.backup.snapshot import Snapshot, utcnow

JSON_MIME_TYPE = "application/json"
CSV_MIME_TYPE = "text/csv"

# Content of CSV exports that have nothing to show
NO_DATA_CONTENT = "No data available"
INVALID_TYPE_CONTENT = "Invalid data type"


@dataclass(frozen=True)
class ExportFile:
    """A file ready to be handed to the caller for download."""

    filename: str
    content: str
    mime_type: str

    def to_dict(self) -> dict[str, str]:
        return {
            "filename": self.filename,
            "content": self.content,
            "type": self.mime_type,
        }


def _first(record: Mapping[str, Any], key: str, default: Any = "") -> Any:
    value = record.get(key)
    return value if value else default


def _yes_no(value: Any) -> str:
    return "Yes" if value else "No"


def _format_date(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value)
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return text


def _member_row(member: Mapping[str, Any]) -> list[Any]:
    return [
        _first(member, "fullName"),
        _first(member, "email"),
        _first(member, "phone"),
        _first(member, "gender"),
        _format_date(member.get("baptizedDate")),
        _first(member, "pioneerStatus", "none"),
        _first(member, "address"),
    ]


def _count(value: Any) -> int:
    return len(value) if isinstance(value, (list, tuple)) else 0


def _group_row(group: Mapping[str, Any]) -> list[Any]:
    return [
        _first(group, "name"),
        _first(group, "description"),
        _first(group, "overseer"),
        _first(group, "assistant"),
        _count(group.get("members")),
    ]


def _territory_row(territory: Mapping[str, Any]) -> list[Any]:
    return [
        _first(territory, "number"),
        _first(territory, "name"),
        _first(territory, "type"),
        _first(territory, "difficulty"),
        _first(territory, "estimatedHours", 0),
        _first(territory, "householdCount", 0),
        _yes_no(territory.get("isActive")),
    ]


def _report_row(report: Mapping[str, Any]) -> list[Any]:
    return [
        _first(report, "month"),
        _first(report, "publisher"),
        _first(report, "hours", 0),
        _first(report, "bibleStudents", 0),
        _yes_no(report.get("auxiliaryPioneer")),
    ]


@dataclass(frozen=True)
class CsvProjection:
    """
    Column projection for one exportable entity type.

    Attributes:
        sources: Snapshot keys to read records from, first present wins
        headers: Column titles
        row: Maps one record to its column values
    """

    sources: tuple[str, ...]
    headers: tuple[str, ...]
    row: Callable[[Mapping[str, Any]], list[Any]]


CSV_PROJECTIONS: dict[str, CsvProjection] = {
    "members": CsvProjection(
        sources=("members",),
        headers=(
            "Full Name",
            "Email",
            "Phone",
            "Gender",
            "Baptized Date",
            "Pioneer Status",
            "Address",
        ),
        row=_member_row,
    ),
    "groups": CsvProjection(
        sources=("groups",),
        headers=("Name", "Description", "Overseer", "Assistant", "Member Count"),
        row=_group_row,
    ),
    "territories": CsvProjection(
        sources=("territories",),
        headers=(
            "Number",
            "Name",
            "Type",
            "Difficulty",
            "Estimated Hours",
            "Household Count",
            "Active",
        ),
        row=_territory_row,
    ),
    "reports": CsvProjection(
        sources=("fieldServiceReports", "reports"),
        headers=("Month", "Publisher", "Hours", "Bible Students", "Auxiliary Pioneer"),
        row=_report_row,
    ),
}

CSV_TYPES = tuple(CSV_PROJECTIONS)


def _cell(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _today() -> date:
    return utcnow().date()


class ExportFormatter:
    """
    Turns a snapshot into a downloadable file.

    Formatting never modifies the snapshot, and always returns a file:
    a CSV request for an unsupported type or an empty collection yields
    a file holding a placeholder message rather than an error.

    Usage:
        formatter = ExportFormatter()
        export = formatter.to_json(snapshot)
        export = formatter.to_csv(snapshot, "members")
    """

    def __init__(self, today: Callable[[], date] = _today):
        self.today = today

    def to_json(self, snapshot: Snapshot) -> ExportFile:
        """Export the full snapshot as pretty-printed JSON."""
        content = json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False)
        return ExportFile(
            filename=f"congregation-backup-{self.today().isoformat()}.json",
            content=content,
            mime_type=JSON_MIME_TYPE,
        )

    def to_csv(self, snapshot: Snapshot, entity_type: str) -> ExportFile:
        """
        Export one entity type as CSV.

        The header row is followed by one row per record, every field
        quoted with embedded quotes doubled.

        Args:
            snapshot: Snapshot to read from
            entity_type: One of CSV_TYPES

        Returns:
            ExportFile with the CSV text, or a placeholder message
        """
        filename = f"congregation-{entity_type}-{self.today().isoformat()}.csv"
        return ExportFile(
            filename=filename,
            content=self.csv_content(snapshot, entity_type),
            mime_type=CSV_MIME_TYPE,
        )

    def csv_content(self, snapshot: Snapshot, entity_type: str) -> str:
        projection = CSV_PROJECTIONS.get(entity_type)
        if projection is None:
            return INVALID_TYPE_CONTENT

        records: list[dict[str, Any]] = []
        for source in projection.sources:
            if snapshot.data.get(source) is not None:
                records = snapshot.data[source]
                break

        if not records:
            return NO_DATA_CONTENT

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        for record in records:
            writer.writerow([_cell(value) for value in projection.row(record)])

        # Header is written bare; rows end without a trailing newline
        return ",".join(projection.headers) + "\n" + buffer.getvalue()[:-1]
