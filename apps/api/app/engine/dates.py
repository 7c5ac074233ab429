"""Normalization of spreadsheet date values.

Cells reach us as spreadsheet day serials (floats counted from 1899-12-30),
as ISO strings, as formatted text ("March 15, 2024", "15 Mar 2024", RFC 2822
stamps, US-style numerics), or already as ``datetime`` objects when
pandas/openpyxl parsed them. Text is read month-first. Everything here
fails soft and returns ``None``.
"""

from __future__ import annotations

import logging
import math
import numbers
import re
import warnings
from datetime import date, datetime, timedelta, timezone

import pandas as pd


EXCEL_EPOCH_SERIAL = 25569
EPOCH_ANCHOR = date(1970, 1, 1)
SECONDS_PER_DAY = 86400

# Order matters: 4-digit years are tried before the 2-digit fallback.
_DATE_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"(?<!\d)(\d{1,2})/(\d{1,2})/(\d{4})(?!\d)"),  # MM/DD/YYYY
    re.compile(r"(?<!\d)(\d{1,2})-(\d{1,2})-(\d{4})(?!\d)"),  # MM-DD-YYYY
    re.compile(r"(?<!\d)(\d{4})-(\d{1,2})-(\d{1,2})(?!\d)"),  # YYYY-MM-DD
    re.compile(r"(?<!\d)(\d{1,2})/(\d{1,2})/(\d{2})(?!\d)"),  # MM/DD/YY
)

DATE_FORMATS = {
    "YYYY-MM-DD": "%Y-%m-%d",
    "MM/DD/YYYY": "%m/%d/%Y",
    "DD/MM/YYYY": "%d/%m/%Y",
}

_logger = logging.getLogger(__name__)


def serial_to_datetime(serial: float) -> datetime:
    """Convert a spreadsheet day serial to a naive UTC datetime.

    The integral day and the time of day are computed separately so the day
    never drifts because of float rounding in the fraction.
    """
    whole_days = math.floor(serial)
    fraction = serial - whole_days + 0.0000001
    seconds = min(SECONDS_PER_DAY - 1, int(math.floor(SECONDS_PER_DAY * fraction)))
    base = datetime(1970, 1, 1) + timedelta(days=whole_days - EXCEL_EPOCH_SERIAL)
    return base + timedelta(seconds=seconds)


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _is_plain_number(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


def _parse_with_pandas(text: str) -> datetime | None:
    if not any(char.isdigit() for char in text) or _is_plain_number(text):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return _to_naive_utc(parsed.to_pydatetime())


def _parse_text(text: str) -> datetime | None:
    try:
        return _to_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        pass

    parsed = _parse_with_pandas(text)
    if parsed is not None:
        return parsed

    for pattern in _DATE_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        first, second, third = match.groups()
        if len(first) == 4:
            year, month, day = int(first), int(second), int(third)
        else:
            month, day, year = int(first), int(second), int(third)
            if year < 100:
                year += 2000
        try:
            return datetime(year, month, day)
        except ValueError:
            continue
    return None


def parse_datetime(value: object) -> datetime | None:
    if _is_missing(value) or isinstance(value, bool):
        return None
    try:
        if isinstance(value, pd.Timestamp):
            return _to_naive_utc(value.to_pydatetime())
        if isinstance(value, datetime):
            return _to_naive_utc(value)
        if isinstance(value, date):
            return datetime.combine(value, datetime.min.time())
        if isinstance(value, numbers.Real):
            return serial_to_datetime(float(value))
        if isinstance(value, str):
            text = value.strip()
            return _parse_text(text) if text else None
    except (OverflowError, ValueError) as exc:
        _logger.debug("Unparseable date value %r: %s", value, exc)
    return None


def normalize_date(value: object) -> date | None:
    parsed = parse_datetime(value)
    return parsed.date() if parsed is not None else None


def is_epoch_anchor(value: date | datetime | None) -> bool:
    if value is None:
        return False
    if isinstance(value, datetime):
        value = value.date()
    return value == EPOCH_ANCHOR


def usable_date(value: object) -> date | None:
    """Normalize ``value`` and treat the epoch anchor as a parse failure."""
    normalized = normalize_date(value)
    if normalized is None or is_epoch_anchor(normalized):
        return None
    return normalized


def format_date(value: object, fmt: str = "YYYY-MM-DD") -> str:
    normalized = normalize_date(value)
    if normalized is None:
        return ""
    return normalized.strftime(DATE_FORMATS.get(fmt, DATE_FORMATS["YYYY-MM-DD"]))
