"""Repair of rows left blank by merged identifier cells.

Spreadsheets that merge the campaign cells vertically only keep the value in
the first row of the merge; the continuation rows come through with blank
identifiers. Reconstruction is a left fold over the rows in sheet order with
the last fully identified row as carried state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import reduce
from typing import Iterable, NamedTuple

from .campaign_codes import code_from_column, resolve_campaign_code
from .dates import is_epoch_anchor, normalize_date
from .rows import (
    CAMPAIGN_CODE_KEY,
    CODE_COLUMNS,
    DEADLINE_COLUMNS,
    DEADLINE_KEY,
    NAME_COLUMNS,
    START_DATE_COLUMNS,
    START_DATE_KEY,
    campaign_name,
    code_text,
    deadline_value,
    source_sheet,
    start_date_value,
    status_text,
    tactic_text,
)
from ..utils.names import normalize_header


_logger = logging.getLogger(__name__)

IDENTIFYING_HEADERS = frozenset(
    normalize_header(name) for name in (*CODE_COLUMNS, *NAME_COLUMNS, *START_DATE_COLUMNS, *DEADLINE_COLUMNS)
)


@dataclass(frozen=True)
class CarryState:
    reference: dict | None = None
    rows: list = field(default_factory=list)
    dropped: int = 0


class Reconstruction(NamedTuple):
    rows: list[dict]
    dropped: int


def _sheet_date(value: object, field: str):
    parsed = normalize_date(value)
    if is_epoch_anchor(parsed):
        _logger.debug("Ignoring epoch-anchor %s %r", field, value)
        return None
    return parsed


def _has_meaningful_fields(record: dict) -> bool:
    return bool(campaign_name(record) or status_text(record) or tactic_text(record))


def _identified_row(record: dict, code: str) -> dict:
    row = dict(record)
    row[CAMPAIGN_CODE_KEY] = code
    row[START_DATE_KEY] = _sheet_date(start_date_value(record), "start date")
    row[DEADLINE_KEY] = _sheet_date(deadline_value(record), "deadline")
    return row


def _continuation_row(record: dict, reference: dict) -> dict:
    row = {
        key: value
        for key, value in reference.items()
        if normalize_header(key) in IDENTIFYING_HEADERS
    }
    row.update({key: value for key, value in record.items() if value != "" or key not in row})
    row[CAMPAIGN_CODE_KEY] = reference[CAMPAIGN_CODE_KEY]

    start = _sheet_date(start_date_value(record), "start date")
    deadline = _sheet_date(deadline_value(record), "deadline")
    row[START_DATE_KEY] = start if start is not None else reference[START_DATE_KEY]
    row[DEADLINE_KEY] = deadline if deadline is not None else reference[DEADLINE_KEY]
    return row


def _step(state: CarryState, record: dict) -> CarryState:
    reference = state.reference
    if reference is not None and source_sheet(reference) != source_sheet(record):
        reference = None

    code = code_from_column(code_text(record)) or resolve_campaign_code(campaign_name(record), strict=False)
    if code:
        row = _identified_row(record, code)
        state.rows.append(row)
        return CarryState(reference=row, rows=state.rows, dropped=state.dropped)

    if reference is None or not _has_meaningful_fields(record):
        return CarryState(reference=reference, rows=state.rows, dropped=state.dropped + 1)

    state.rows.append(_continuation_row(record, reference))
    return CarryState(reference=reference, rows=state.rows, dropped=state.dropped)


def reconstruct_rows(records: Iterable[dict]) -> Reconstruction:
    """Resolve campaign codes and fill merged-cell continuation rows.

    ``records`` must be in original sheet order. A row that resolves a code
    becomes the reference for the rows below it; a row without a code but with
    a name, status or tactic inherits the reference's identifying columns,
    code and any date it does not set itself. Carry-forward stops at sheet
    boundaries. Everything else is dropped and counted.
    """
    final = reduce(_step, records, CarryState())
    return Reconstruction(rows=final.rows, dropped=final.dropped)
