"""Report building, rendering and exit status.

Purpose
-------
Order the staleness records, render them as a text table or JSON, and map
the outcome onto a process exit code.

Contents
--------
* :class:`RenderedReport` - Sorted records plus their text rendering
* :func:`build_report` - Sort and render records
* :func:`exit_status` - Exit code for a set of records
* :func:`record_to_dict` / :func:`report_to_dict` - JSON-ready dictionaries
* :func:`write_report_json` - Write the report to a JSON file
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .models import ExitCodePolicy, SortKey, StalenessRecord
from .schemas import ReportSchema, StalenessRecordSchema
from .semver import SemVer

logger = logging.getLogger(__name__)

NOTHING_NEWER = "---"
REMOVED = "RM"
UP_TO_DATE_MESSAGE = "All dependencies are up to date, yay!"
_HEADERS = ("Name", "Project", "Compat", "Latest", "Kind", "Path")


@dataclass(frozen=True, slots=True)
class RenderedReport:
    """A finished report.

    Attributes:
        records: Records in report order.
        text: Human readable rendering.
        unclassified: ``"name version: reason"`` lines for packages that
            could not be fully classified.
    """

    records: tuple[StalenessRecord, ...]
    text: str
    unclassified: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.text


def _newest(record: StalenessRecord) -> SemVer:
    known = [v for v in (record.compatible_latest, record.absolute_latest) if v is not None]
    return max(known, default=record.current)


def _magnitude(record: StalenessRecord) -> tuple[int, int, int]:
    """Distance between current and newest in the most significant differing component."""
    newest, current = _newest(record), record.current
    if newest.major != current.major:
        return (newest.major - current.major, 0, 0)
    if newest.minor != current.minor:
        return (0, newest.minor - current.minor, 0)
    return (0, 0, newest.patch - current.patch)


def sort_records(records: Iterable[StalenessRecord], sort_key: SortKey = SortKey.NAME) -> list[StalenessRecord]:
    """Return ``records`` in report order."""
    if sort_key is SortKey.MAGNITUDE:
        return sorted(records, key=lambda r: (tuple(-part for part in _magnitude(r)), r.package_id))
    return sorted(records, key=lambda r: r.package_id)


def _display(version: SemVer | None, current: SemVer) -> str:
    if version is None or version == current:
        return NOTHING_NEWER
    return str(version)


def _row(record: StalenessRecord) -> tuple[str, ...]:
    compat = REMOVED if record.removed else _display(record.compatible_latest, record.current)
    return (
        record.name,
        str(record.current),
        compat,
        _display(record.absolute_latest, record.current),
        record.kind.value,
        " -> ".join(pid.name for pid in record.reached_via),
    )


def _render_table(rows: list[tuple[str, ...]]) -> str:
    widths = [max(len(row[col]) for row in rows) for col in range(len(_HEADERS))]
    lines = []
    for row in rows:
        cells = [cell.ljust(width) for cell, width in zip(row, widths)]
        lines.append("  ".join(cells).rstrip())
    return "\n".join(lines)


def _unclassified(records: Iterable[StalenessRecord]) -> tuple[str, ...]:
    return tuple(f"{record.package_id}: {'; '.join(record.notes)}" for record in records if record.notes)


def build_report(records: Iterable[StalenessRecord], sort_key: SortKey = SortKey.NAME) -> RenderedReport:
    """Sort and render staleness records.

    Args:
        records: Records from the diff engine.
        sort_key: Ordering of the rows.

    Returns:
        The rendered report. Rendering is deterministic for equal input.
    """
    ordered = sort_records(records, sort_key)
    unclassified = _unclassified(ordered)

    if ordered:
        header = tuple(_HEADERS)
        separator = tuple("-" * len(title) for title in _HEADERS)
        text = _render_table([header, separator, *(_row(record) for record in ordered)])
    else:
        text = UP_TO_DATE_MESSAGE

    if unclassified:
        details = "\n".join(f"  {line}" for line in unclassified)
        text = f"{text}\n\nCould not fully classify:\n{details}"

    return RenderedReport(records=tuple(ordered), text=text, unclassified=unclassified)


def exit_status(records: Iterable[StalenessRecord], policy: ExitCodePolicy | None = None) -> int:
    """Map records onto an exit code.

    Args:
        records: Reported records.
        policy: Exit codes per outcome; all zero when omitted.

    Returns:
        ``policy.incompatible`` when any outdated package has a newer version
        outside its requirement, ``policy.compatible`` when only compatible
        upgrades exist, ``policy.up_to_date`` otherwise.
    """
    policy = policy or ExitCodePolicy()
    outdated = [record for record in records if record.is_outdated]
    if not outdated:
        return policy.up_to_date
    if any(record.incompatible for record in outdated):
        return policy.incompatible
    return policy.compatible


def _optional(version: SemVer | None) -> str | None:
    return None if version is None else str(version)


def _record_schema(record: StalenessRecord) -> StalenessRecordSchema:
    return StalenessRecordSchema(
        name=record.name,
        source=record.package_id.source,
        current=str(record.current),
        compatible_latest=_optional(record.compatible_latest),
        absolute_latest=_optional(record.absolute_latest),
        kind=record.kind,
        reached_via=[str(pid) for pid in record.reached_via],
        notes=list(record.notes),
        incompatible=record.incompatible,
        removed=record.removed,
    )


def record_to_dict(record: StalenessRecord) -> dict[str, Any]:
    """Convert a record to a JSON-ready dictionary."""
    return _record_schema(record).model_dump()


def report_to_dict(report: RenderedReport, exit_code: int | None = None) -> dict[str, Any]:
    """Convert a rendered report to a JSON-ready dictionary."""
    schema = ReportSchema(
        records=[_record_schema(record) for record in report.records],
        outdated_count=sum(1 for record in report.records if record.is_outdated),
        unclassified=list(report.unclassified),
        exit_code=exit_code,
    )
    return schema.model_dump()


def write_report_json(report: RenderedReport, output_path: Path | str, exit_code: int | None = None) -> None:
    """Write the report to a JSON file.

    Raises:
        ValueError: If ``output_path`` is a directory.
    """
    path = Path(output_path).resolve()

    if path.is_dir():
        raise ValueError(f"Output path must be a file, not a directory: {path}")

    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        json.dump(report_to_dict(report, exit_code), f, indent=2)

    logger.info("Wrote %d records to %s", len(report.records), path)


__all__ = [
    "NOTHING_NEWER",
    "UP_TO_DATE_MESSAGE",
    "RenderedReport",
    "build_report",
    "exit_status",
    "record_to_dict",
    "report_to_dict",
    "sort_records",
    "write_report_json",
]
