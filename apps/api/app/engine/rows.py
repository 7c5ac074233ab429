"""Tabular sheet → record extraction and accessors for the open row map.

A record is a plain ``dict`` mapping each header to its cell value. The
reserved keys below are added by extraction and reconstruction; every other
key is a column header exactly as the sheet spells it.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from ..utils.names import clean_text, normalize_header


SOURCE_SHEET_KEY = "_source_sheet"
CAMPAIGN_CODE_KEY = "_campaign_code"
START_DATE_KEY = "_start_date"
DEADLINE_KEY = "_deadline"
RESERVED_KEYS = frozenset({SOURCE_SHEET_KEY, CAMPAIGN_CODE_KEY, START_DATE_KEY, DEADLINE_KEY})

CODE_COLUMNS = ("ITL", "ITL Code", "ITL #", "ITL No", "Campaign Code")
NAME_COLUMNS = ("Campaign Name", "Campaign", "Name")
STATUS_COLUMNS = ("Status", "Campaign Status")
TACTIC_COLUMNS = ("Tactic", "Tactics")
START_DATE_COLUMNS = ("Start Date", "Start", "Launch Date")
DEADLINE_COLUMNS = ("Deadline", "End Date", "Due Date")
TARGET_COLUMNS = ("Target", "Lead Target", "Leads Target", "Allocation")
DELIVERED_COLUMNS = ("Delivered", "Leads Delivered", "Delivered Leads")


def _cell_value(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if isinstance(value, str):
        return value.strip()
    return value


def _header_names(raw_headers: Sequence[object]) -> list[str]:
    names: list[str] = []
    used: set[str] = set(RESERVED_KEYS)
    for idx, raw in enumerate(raw_headers):
        base = clean_text(_cell_value(raw)) or f"column_{idx + 1}"
        name = base
        suffix = 0
        while name in used:
            suffix += 1
            name = f"{base}.{suffix}"
        used.add(name)
        names.append(name)
    return names


def extract_records(grid: Sequence[Sequence[object]] | None, sheet_name: str) -> list[dict[str, object]]:
    """Turn a header row plus data rows into one record per data row.

    Blank or duplicated headers get positional names so the column order of
    every record matches the sheet. Cells missing at the end of a short row
    default to an empty string.
    """
    if not grid or len(grid) < 2:
        return []

    headers = _header_names(list(grid[0] or []))
    records: list[dict[str, object]] = []
    for raw in grid[1:]:
        cells = list(raw or [])
        record: dict[str, object] = {}
        for idx, header in enumerate(headers):
            record[header] = _cell_value(cells[idx]) if idx < len(cells) else ""
        record[SOURCE_SHEET_KEY] = sheet_name
        records.append(record)
    return records


def cell_text(value: object) -> str:
    value = _cell_value(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return clean_text(value)


def field_value(record: dict[str, object], aliases: Iterable[str], default: object = "") -> object:
    """First non-blank value among ``aliases`` (headers matched loosely)."""
    wanted = [normalize_header(alias) for alias in aliases]
    by_header = {
        normalize_header(key): value
        for key, value in record.items()
        if key not in RESERVED_KEYS
    }
    for key in wanted:
        value = by_header.get(key)
        if value is not None and cell_text(value):
            return value
    return default


def field_text(record: dict[str, object], aliases: Iterable[str], default: str = "") -> str:
    return cell_text(field_value(record, aliases, default=default))


def has_column(record: dict[str, object], aliases: Iterable[str]) -> bool:
    headers = {normalize_header(key) for key in record if key not in RESERVED_KEYS}
    return any(normalize_header(alias) in headers for alias in aliases)


def positional_value(record: dict[str, object], index: int, default: object = "") -> object:
    values = [value for key, value in record.items() if key not in RESERVED_KEYS]
    if 0 <= index < len(values):
        return values[index]
    return default


def data_fields(record: dict[str, object]) -> dict[str, object]:
    return {key: value for key, value in record.items() if key not in RESERVED_KEYS}


def source_sheet(record: dict[str, object]) -> str:
    return str(record.get(SOURCE_SHEET_KEY) or "")


def code_text(record: dict[str, object]) -> str:
    return field_text(record, CODE_COLUMNS)


def campaign_name(record: dict[str, object]) -> str:
    return field_text(record, NAME_COLUMNS)


def status_text(record: dict[str, object]) -> str:
    return field_text(record, STATUS_COLUMNS)


def tactic_text(record: dict[str, object]) -> str:
    return field_text(record, TACTIC_COLUMNS)


def start_date_value(record: dict[str, object]) -> object:
    return field_value(record, START_DATE_COLUMNS, default=None)


def deadline_value(record: dict[str, object]) -> object:
    return field_value(record, DEADLINE_COLUMNS, default=None)


def int_field(record: dict[str, object], aliases: Iterable[str]) -> int:
    """Whole-number field; anything unparseable counts as 0."""
    raw = cell_text(field_value(record, aliases)).replace(",", "").replace(" ", "")
    if not raw:
        return 0
    try:
        return int(round(float(raw)))
    except (TypeError, ValueError, OverflowError):
        return 0
