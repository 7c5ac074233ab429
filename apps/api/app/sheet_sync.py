from __future__ import annotations

import hashlib
import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .engine.merged_rows import reconstruct_rows
from .engine.rows import (
    CAMPAIGN_CODE_KEY,
    DEADLINE_KEY,
    DELIVERED_COLUMNS,
    START_DATE_KEY,
    TARGET_COLUMNS,
    campaign_name,
    cell_text,
    data_fields,
    int_field,
    source_sheet,
    status_text,
    tactic_text,
)
from .events import SHEET_DATA_EVENT, EventPublisher, NullPublisher
from .models import SheetRow, SyncRun
from .sheet_source import SheetSourceError


logger = logging.getLogger(__name__)

SYNC_KIND = "sheet_sync"


@dataclass
class SyncStats:
    processed: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"processed": self.processed, "skipped": self.skipped, "errors": self.errors}


@dataclass
class SyncOutcome:
    changed: bool
    stats: SyncStats = field(default_factory=SyncStats)
    fingerprint: str | None = None
    inserted: int = 0
    updated: int = 0
    deleted: int = 0


def sheet_row_values(record: dict) -> dict:
    """Column values for one reconstructed record."""
    return {
        "campaign_code": str(record.get(CAMPAIGN_CODE_KEY) or ""),
        "start_date": record.get(START_DATE_KEY),
        "deadline": record.get(DEADLINE_KEY),
        "campaign_name": campaign_name(record)[:255],
        "status": status_text(record)[:64],
        "tactic": tactic_text(record)[:128],
        "source_sheet": source_sheet(record)[:128],
        "target_leads": int_field(record, TARGET_COLUMNS),
        "delivered_leads": int_field(record, DELIVERED_COLUMNS),
        "fields": {key: cell_text(value) for key, value in data_fields(record).items()},
    }


def compute_fingerprint(values: list[dict]) -> str:
    payload = json.dumps(values, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_sheet_row(row: SheetRow) -> dict:
    return {
        "id": row.id,
        "campaign_code": row.campaign_code,
        "start_date": _iso(row.start_date),
        "deadline": _iso(row.deadline),
        "campaign_name": row.campaign_name,
        "status": row.status,
        "tactic": row.tactic,
        "source_sheet": row.source_sheet,
        "target_leads": int(row.target_leads or 0),
        "delivered_leads": int(row.delivered_leads or 0),
        "fields": dict(row.fields or {}),
        "synced_at": _iso(row.synced_at),
    }


def load_sheet_rows(db: Session, start: date | None = None, end: date | None = None) -> list[dict]:
    query = db.query(SheetRow)
    if start is not None:
        query = query.filter(SheetRow.start_date >= start)
    if end is not None:
        query = query.filter(SheetRow.start_date <= end)
    return [serialize_sheet_row(row) for row in query.order_by(SheetRow.id.asc()).all()]


class ReconcileStrategy(ABC):
    """Writes reconstructed rows into ``sheet_rows``.

    ``apply`` stages its changes on the session without committing; the
    service commits and then calls ``committed`` with the outcome.
    """

    name = ""
    publish_unchanged = False

    @abstractmethod
    def apply(self, db: Session, rows: list[dict]) -> SyncOutcome:
        raise NotImplementedError

    def committed(self, outcome: SyncOutcome) -> None:
        pass


class ReplaceStrategy(ReconcileStrategy):
    """Wipe and reload, skipped entirely when the content hash is unchanged."""

    name = "replace"

    def __init__(self) -> None:
        self.last_fingerprint: str | None = None

    def apply(self, db: Session, rows: list[dict]) -> SyncOutcome:
        values = [sheet_row_values(record) for record in rows]
        fingerprint = compute_fingerprint(values)
        if fingerprint == self.last_fingerprint:
            return SyncOutcome(changed=False, fingerprint=fingerprint)

        now = datetime.utcnow()
        deleted = db.query(SheetRow).delete(synchronize_session=False)
        db.add_all([SheetRow(**item, synced_at=now) for item in values])
        return SyncOutcome(
            changed=True,
            stats=SyncStats(processed=len(values)),
            fingerprint=fingerprint,
            inserted=len(values),
            deleted=int(deleted or 0),
        )

    def committed(self, outcome: SyncOutcome) -> None:
        self.last_fingerprint = outcome.fingerprint


class MirrorStrategy(ReconcileStrategy):
    """Upsert by (campaign_code, start_date) and prune keys gone from the source."""

    name = "mirror"
    publish_unchanged = True

    def apply(self, db: Session, rows: list[dict]) -> SyncOutcome:
        stats = SyncStats()
        incoming: dict[tuple[str, date | None], dict] = {}
        for record in rows:
            try:
                values = sheet_row_values(record)
            except Exception as exc:
                stats.errors += 1
                logger.warning("Unable to map sheet row from %r: %s", source_sheet(record), exc)
                continue
            if not values["campaign_code"] or not values["status"]:
                stats.skipped += 1
                continue
            key = (values["campaign_code"], values["start_date"])
            if key in incoming:
                # Last occurrence wins; the overwritten row counts as skipped.
                stats.skipped += 1
            incoming[key] = values

        existing: dict[tuple[str, date | None], SheetRow] = {}
        stale: list[SheetRow] = []
        for row in db.query(SheetRow).order_by(SheetRow.id.asc()).all():
            key = (row.campaign_code, row.start_date)
            if key not in incoming or key in existing:
                stale.append(row)
            else:
                existing[key] = row

        now = datetime.utcnow()
        outcome = SyncOutcome(changed=False, stats=stats)
        for key, values in incoming.items():
            row = existing.get(key)
            if row is None:
                db.add(SheetRow(**values, synced_at=now))
                outcome.inserted += 1
                continue
            diff = {name: value for name, value in values.items() if getattr(row, name) != value}
            if diff:
                for name, value in diff.items():
                    setattr(row, name, value)
                row.synced_at = now
                outcome.updated += 1

        for row in stale:
            db.delete(row)
        outcome.deleted = len(stale)
        stats.processed = len(incoming)
        outcome.changed = bool(outcome.inserted or outcome.updated or outcome.deleted)
        return outcome


STRATEGIES: dict[str, type[ReconcileStrategy]] = {
    ReplaceStrategy.name: ReplaceStrategy,
    MirrorStrategy.name: MirrorStrategy,
}


def build_strategy(name: str) -> ReconcileStrategy:
    key = str(name or "").strip().lower()
    if key not in STRATEGIES:
        raise ValueError(f"Unknown sheet sync strategy: {name!r} (expected one of {sorted(STRATEGIES)})")
    return STRATEGIES[key]()


class SheetSyncService:
    """One reconciliation pipeline with its own single-flight guard.

    State (the strategy's fingerprint, the cached dataset, the running flag)
    lives on the instance, so independent services never interfere.
    """

    def __init__(
        self,
        load_records: Callable[[], list[dict]],
        session_factory: Callable[[], Session],
        strategy: ReconcileStrategy,
        publisher: EventPublisher | None = None,
    ) -> None:
        self._load_records = load_records
        self._session_factory = session_factory
        self.strategy = strategy
        self.publisher = publisher or NullPublisher()
        self._lock = threading.Lock()
        self._running = False
        self._data: list[dict] | None = None
        self.last_result: dict | None = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def run_once(self, trigger: str = "manual") -> dict:
        with self._lock:
            if self._running:
                logger.info("Sheet sync (%s) rejected: another run is in progress", trigger)
                return {"ok": True, "skipped": True, "reason": "sync_already_running", "running": True}
            self._running = True
        try:
            result = self._run(trigger)
        finally:
            with self._lock:
                self._running = False
        self.last_result = {key: value for key, value in result.items() if key != "data"}
        return result

    def current_data(self) -> list[dict]:
        if self._data is not None:
            return self._data
        db = self._session_factory()
        try:
            return load_sheet_rows(db)
        finally:
            db.close()

    def _record_failure(self, started_at: datetime, reason: str, message: str) -> None:
        db = self._session_factory()
        try:
            db.add(
                SyncRun(
                    kind=SYNC_KIND,
                    strategy=self.strategy.name,
                    result="error",
                    message=f"{reason}: {message}"[:255],
                    started_at=started_at,
                    finished_at=datetime.utcnow(),
                )
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Unable to record failed sheet sync run")
        finally:
            db.close()

    def _run(self, trigger: str) -> dict:
        started_at = datetime.utcnow()
        base = {"strategy": self.strategy.name, "trigger": trigger}

        try:
            records = self._load_records()
        except SheetSourceError as exc:
            logger.warning("Sheet sync aborted, source unavailable: %s", exc)
            self._record_failure(started_at, "source_unavailable", str(exc))
            return {**base, "ok": False, "reason": "source_unavailable", "error": str(exc)}

        if not records:
            logger.warning("Sheet source returned no rows, persisted data left untouched")
            return {**base, "ok": False, "skipped": True, "reason": "empty_source"}

        reconstruction = reconstruct_rows(records)
        db = self._session_factory()
        try:
            outcome = self.strategy.apply(db, reconstruction.rows)
            stats = outcome.stats
            stats.skipped += reconstruction.dropped

            if not outcome.changed and not self.strategy.publish_unchanged:
                db.rollback()
                data = self._data if self._data is not None else load_sheet_rows(db)
                self._data = data
                logger.info("Sheet sync (%s): no changes (fingerprint %s)", trigger, outcome.fingerprint)
                return {**base, "ok": True, "changed": False, "stats": stats.as_dict(), "rows": len(data), "data": data}

            db.add(
                SyncRun(
                    kind=SYNC_KIND,
                    strategy=self.strategy.name,
                    result="ok",
                    processed=stats.processed,
                    skipped=stats.skipped,
                    errors=stats.errors,
                    fingerprint=outcome.fingerprint,
                    message=f"inserted={outcome.inserted} updated={outcome.updated} deleted={outcome.deleted}",
                    started_at=started_at,
                    finished_at=datetime.utcnow(),
                )
            )
            db.commit()
            self.strategy.committed(outcome)
            data = load_sheet_rows(db)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Sheet sync failed writing to the store")
            return {**base, "ok": False, "reason": "store_unavailable", "error": str(exc)}
        finally:
            db.close()

        self._data = data
        self.publisher.publish(SHEET_DATA_EVENT, data)
        logger.info(
            "Sheet sync (%s) ok: processed=%s skipped=%s errors=%s inserted=%s updated=%s deleted=%s",
            trigger,
            stats.processed,
            stats.skipped,
            stats.errors,
            outcome.inserted,
            outcome.updated,
            outcome.deleted,
        )
        return {
            **base,
            "ok": True,
            "changed": outcome.changed,
            "stats": stats.as_dict(),
            "inserted": outcome.inserted,
            "updated": outcome.updated,
            "deleted": outcome.deleted,
            "rows": len(data),
            "data": data,
        }
