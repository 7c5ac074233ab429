"""Lead report uploads: spreadsheet files → per (campaign, day) lead counters.

Every sheet of every uploaded file is read into records, deduplicated within
the run on (lead id, raw campaign field, status) and folded into accepted and
rejected lead-id sets keyed by (campaign code, date). Nothing is written until
every file has been read; persistence is one upsert per non-empty key.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Iterable

import pandas as pd
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import LEAD_UPLOAD_MODE, LEAD_UPSERT_BATCH_SIZE, UPLOAD_MAX_FILE_BYTES, UPLOAD_MAX_FILES
from .engine.campaign_codes import match_campaign_code
from .engine.dates import usable_date
from .engine.rows import cell_text, extract_records, field_value, has_column, positional_value
from .events import LEAD_REPORTS_EVENT, EventPublisher, NullPublisher
from .models import LeadReport, SyncRun


logger = logging.getLogger(__name__)

SPREADSHEET_EXTENSIONS = {".xlsx", ".xlsm", ".xls"}
DELIMITED_EXTENSIONS = {".csv"}
ALLOWED_EXTENSIONS = SPREADSHEET_EXTENSIONS | DELIMITED_EXTENSIONS
ALLOWED_CONTENT_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel.sheet.macroenabled.12",
    "application/vnd.ms-excel",
    "text/csv",
    "application/csv",
    "text/plain",
    "application/octet-stream",
}

LEAD_ID_COLUMNS = ("Lead ID", "LeadID", "Lead Id", "Lead", "ID")
TIMESTAMP_COLUMNS = ("Timestamp", "Date", "Lead Date", "Created", "Created At")
CAMPAIGN_COLUMNS = ("Campaign", "Campaign Name", "Campaign Code", "ITL", "ITL Code")
LEAD_STATUS_COLUMNS = ("Status", "Lead Status")

# Fallback positions for uploader templates without recognizable headers.
LEAD_ID_POSITION = 0
TIMESTAMP_POSITION = 1
CAMPAIGN_POSITION = 6

REJECTED_STATUS = "rejected"
UPLOAD_MODES = ("replace", "merge")


class UploadRejected(ValueError):
    """The request's files were refused before anything was read."""


class UploadProcessingError(RuntimeError):
    def __init__(self, message: str, stats: "UploadStats") -> None:
        super().__init__(message)
        self.stats = stats


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content: bytes
    content_type: str = ""

    @property
    def extension(self) -> str:
        return Path(self.filename or "").suffix.lower()


@dataclass
class UploadStats:
    files: int = 0
    sheets: int = 0
    rows: int = 0
    processed: int = 0
    skipped: int = 0
    duplicates: int = 0
    errors: int = 0
    keys_written: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "files": self.files,
            "sheets": self.sheets,
            "rows": self.rows,
            "processed": self.processed,
            "skipped": self.skipped,
            "duplicates": self.duplicates,
            "errors": self.errors,
            "keys_written": self.keys_written,
        }


@dataclass
class LeadBucket:
    accepted: set[str] = field(default_factory=set)
    rejected: set[str] = field(default_factory=set)

    @property
    def empty(self) -> bool:
        return not self.accepted and not self.rejected


def validate_upload(files: list[UploadedFile], max_bytes: int = UPLOAD_MAX_FILE_BYTES) -> None:
    if not files:
        raise UploadRejected("No files uploaded")
    if len(files) > UPLOAD_MAX_FILES:
        raise UploadRejected(f"Too many files: {len(files)} (max {UPLOAD_MAX_FILES})")
    for item in files:
        name = item.filename or "<unnamed>"
        if item.extension not in ALLOWED_EXTENSIONS:
            raise UploadRejected(f"{name}: only Excel (.xlsx, .xls) and CSV files are accepted")
        content_type = (item.content_type or "").split(";")[0].strip().lower()
        if content_type and content_type not in ALLOWED_CONTENT_TYPES:
            raise UploadRejected(f"{name}: unsupported content type {content_type}")
        if len(item.content) > max_bytes:
            raise UploadRejected(f"{name}: file exceeds {max_bytes // (1024 * 1024)} MB limit")


def read_workbook(item: UploadedFile) -> dict[str, pd.DataFrame]:
    """All sheets of one file as raw frames (no header inference)."""
    buffer = io.BytesIO(item.content)
    if item.extension in DELIMITED_EXTENSIONS:
        return {Path(item.filename).stem or "csv": pd.read_csv(buffer, header=None, dtype=object, skip_blank_lines=True)}
    engine = "xlrd" if item.extension == ".xls" else "openpyxl"
    return pd.read_excel(buffer, sheet_name=None, header=None, dtype=object, engine=engine)


def frame_to_grid(frame: pd.DataFrame) -> list[list[object]]:
    return frame.astype(object).where(pd.notna(frame), None).values.tolist()


def _lead_field(record: dict, aliases: tuple[str, ...], position: int | None) -> object:
    if has_column(record, aliases):
        return field_value(record, aliases)
    if position is None:
        return ""
    return positional_value(record, position)


class LeadAggregator:
    """In-memory accumulation for one upload invocation."""

    def __init__(self) -> None:
        self.buckets: dict[tuple[str, date], LeadBucket] = {}
        self.stats = UploadStats()
        self._seen: set[tuple[str, str, str]] = set()

    def add_record(self, record: dict) -> bool:
        self.stats.rows += 1
        lead_id = cell_text(_lead_field(record, LEAD_ID_COLUMNS, LEAD_ID_POSITION))
        raw_campaign = cell_text(_lead_field(record, CAMPAIGN_COLUMNS, CAMPAIGN_POSITION))
        status = cell_text(_lead_field(record, LEAD_STATUS_COLUMNS, None)).lower()

        if not lead_id:
            self.stats.skipped += 1
            logger.debug("Skipping row without lead id")
            return False

        dedup_key = (lead_id, raw_campaign, status)
        if dedup_key in self._seen:
            self.stats.skipped += 1
            self.stats.duplicates += 1
            return False
        self._seen.add(dedup_key)

        code = match_campaign_code(raw_campaign, strict=True)
        if code is None:
            self.stats.skipped += 1
            logger.debug("Skipping lead %s: no campaign code in %r", lead_id, raw_campaign)
            return False

        report_date = usable_date(_lead_field(record, TIMESTAMP_COLUMNS, TIMESTAMP_POSITION))
        if report_date is None:
            self.stats.skipped += 1
            logger.debug("Skipping lead %s: no usable date", lead_id)
            return False

        bucket = self.buckets.setdefault((code, report_date), LeadBucket())
        if status == REJECTED_STATUS:
            bucket.rejected.add(lead_id)
        else:
            bucket.accepted.add(lead_id)
        self.stats.processed += 1
        return True

    def add_file(self, item: UploadedFile) -> None:
        self.stats.files += 1
        try:
            frames = read_workbook(item)
        except Exception as exc:
            self.stats.errors += 1
            logger.warning("Unable to read upload %r: %s", item.filename, exc)
            return

        for sheet_name, frame in frames.items():
            self.stats.sheets += 1
            try:
                records = extract_records(frame_to_grid(frame), str(sheet_name))
            except Exception as exc:
                self.stats.errors += 1
                logger.warning("Unable to read sheet %r of %r: %s", sheet_name, item.filename, exc)
                continue
            for record in records:
                try:
                    self.add_record(record)
                except Exception as exc:
                    self.stats.errors += 1
                    logger.warning("Bad row in %r/%r: %s", item.filename, sheet_name, exc)


def _chunks(items: list[dict], size: int) -> Iterable[list[dict]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _merge_with_persisted(db: Session, buckets: dict[tuple[str, date], LeadBucket]) -> None:
    keys = list(buckets)
    for start in range(0, len(keys), LEAD_UPSERT_BATCH_SIZE):
        batch = keys[start : start + LEAD_UPSERT_BATCH_SIZE]
        existing = (
            db.query(LeadReport)
            .filter(
                LeadReport.campaign_code.in_(sorted({code for code, _day in batch})),
                LeadReport.report_date.in_(sorted({day for _code, day in batch})),
            )
            .all()
        )
        for report in existing:
            bucket = buckets.get((report.campaign_code, report.report_date))
            if bucket is None:
                continue
            bucket.accepted.update(str(item) for item in (report.accepted_lead_ids or []))
            bucket.rejected.update(str(item) for item in (report.rejected_lead_ids or []))


def _report_values(buckets: dict[tuple[str, date], LeadBucket], now: datetime) -> list[dict]:
    values = []
    for (code, report_date), bucket in sorted(buckets.items()):
        if bucket.empty:
            continue
        values.append(
            {
                "campaign_code": code,
                "report_date": report_date,
                "accepted_count": len(bucket.accepted),
                "rejected_count": len(bucket.rejected),
                "accepted_lead_ids": sorted(bucket.accepted),
                "rejected_lead_ids": sorted(bucket.rejected),
                "last_updated": now,
            }
        )
    return values


def _upsert_orm(db: Session, values: list[dict]) -> None:
    for item in values:
        report = (
            db.query(LeadReport)
            .filter(
                LeadReport.campaign_code == item["campaign_code"],
                LeadReport.report_date == item["report_date"],
            )
            .first()
        )
        if report is None:
            db.add(LeadReport(**item))
            continue
        for name, value in item.items():
            setattr(report, name, value)


def persist_lead_aggregates(
    db: Session,
    buckets: dict[tuple[str, date], LeadBucket],
    mode: str = LEAD_UPLOAD_MODE,
    batch_size: int = LEAD_UPSERT_BATCH_SIZE,
) -> int:
    """Upsert one row per non-empty key; counts and id lists are set, not added.

    In ``merge`` mode the persisted id sets are unioned into the run's sets
    first, so the stored counts never shrink on a partial re-upload. The
    caller commits.
    """
    if mode not in UPLOAD_MODES:
        raise ValueError(f"Unknown lead upload mode: {mode!r}")
    if mode == "merge":
        _merge_with_persisted(db, buckets)

    values = _report_values(buckets, datetime.utcnow())
    if not values:
        return 0

    dialect = db.get_bind().dialect.name
    if dialect not in {"sqlite", "postgresql"}:
        _upsert_orm(db, values)
        return len(values)

    insert = pg_insert if dialect == "postgresql" else sqlite_insert
    for batch in _chunks(values, max(1, batch_size)):
        insert_stmt = insert(LeadReport).values(batch)
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=["campaign_code", "report_date"],
            set_={
                "accepted_count": insert_stmt.excluded.accepted_count,
                "rejected_count": insert_stmt.excluded.rejected_count,
                "accepted_lead_ids": insert_stmt.excluded.accepted_lead_ids,
                "rejected_lead_ids": insert_stmt.excluded.rejected_lead_ids,
                "last_updated": insert_stmt.excluded.last_updated,
            },
        )
        db.execute(stmt)
    return len(values)


def run_lead_upload(
    db: Session,
    files: list[UploadedFile],
    *,
    mode: str = LEAD_UPLOAD_MODE,
    publisher: EventPublisher | None = None,
) -> dict:
    """Validate, aggregate and persist one upload request.

    Raises ``UploadRejected`` for refused files, ``UploadProcessingError``
    when no row at all could be used, and lets store errors propagate after
    rolling back.
    """
    validate_upload(files)
    started_at = datetime.utcnow()
    aggregator = LeadAggregator()
    for item in files:
        aggregator.add_file(item)
    stats = aggregator.stats

    if stats.processed == 0:
        logger.warning("Lead upload produced no usable rows: %s", stats.as_dict())
        raise UploadProcessingError("No valid lead rows found in the uploaded files", stats)

    try:
        stats.keys_written = persist_lead_aggregates(db, aggregator.buckets, mode=mode)
        db.add(
            SyncRun(
                kind="lead_upload",
                strategy=mode,
                result="ok",
                processed=stats.processed,
                skipped=stats.skipped,
                errors=stats.errors,
                message=f"files={stats.files} keys={stats.keys_written}",
                started_at=started_at,
                finished_at=datetime.utcnow(),
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Lead upload failed writing to the store")
        raise

    codes = sorted({code for code, _day in aggregator.buckets})
    (publisher or NullPublisher()).publish(
        LEAD_REPORTS_EVENT,
        {"campaign_codes": codes, "stats": stats.as_dict()},
    )
    logger.info("Lead upload ok (%s): %s", mode, stats.as_dict())
    return {"ok": True, "mode": mode, "stats": stats.as_dict(), "campaign_codes": codes}
