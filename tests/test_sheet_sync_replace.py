import threading

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from apps.api.app.db import Base
from apps.api.app.engine.rows import extract_records
from apps.api.app.models import SheetRow, SyncRun
from apps.api.app.sheet_source import SheetSourceError
from apps.api.app.sheet_sync import ReplaceStrategy, SheetSyncService


GRID = [
    ["ITL", "Campaign Name", "Status", "Start Date", "Deadline"],
    ["ITL-1001", "Alpha", "Live", "03/01/2024", "03/31/2024"],
    ["", "", "Paused", "", ""],
    ["", "", "", "04/01/2024", ""],
    ["ITL 1002", "Beta", "Completed", "1970-01-01", ""],
]


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish(self, event_name, payload):
        self.events.append((event_name, payload))


def _build_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _service(session_factory, loader, publisher=None):
    return SheetSyncService(
        load_records=loader,
        session_factory=session_factory,
        strategy=ReplaceStrategy(),
        publisher=publisher,
    )


def test_replace_sync_persists_reconstructed_rows_and_publishes():
    _engine, session_factory = _build_session_factory()
    publisher = RecordingPublisher()
    service = _service(session_factory, lambda: extract_records(GRID, "Campaigns"), publisher)

    result = service.run_once()

    assert result["ok"] is True
    assert result["changed"] is True
    assert result["stats"] == {"processed": 3, "skipped": 1, "errors": 0}
    db = session_factory()
    codes = [row.campaign_code for row in db.query(SheetRow).order_by(SheetRow.id).all()]
    assert codes == ["1001", "1001", "1002"]
    assert publisher.events[0][0] == "sheetDataUpdated"
    assert len(publisher.events[0][1]) == 3
    assert db.query(SyncRun).filter(SyncRun.result == "ok").count() == 1


def test_second_identical_sync_performs_no_store_mutations():
    engine, session_factory = _build_session_factory()
    publisher = RecordingPublisher()
    service = _service(session_factory, lambda: extract_records(GRID, "Campaigns"), publisher)
    statements = []

    @event.listens_for(engine, "before_cursor_execute")
    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    first = service.run_once()
    statements.clear()
    second = service.run_once()

    writes = [s for s in statements if s.lstrip().upper().startswith(("INSERT", "UPDATE", "DELETE"))]
    assert writes == []
    assert second["ok"] is True
    assert second["changed"] is False
    assert second["data"] == first["data"]
    assert len(publisher.events) == 1


def test_changed_source_replaces_whole_collection():
    _engine, session_factory = _build_session_factory()
    grids = [GRID, [GRID[0], ["ITL-3003", "Gamma", "Live", "05/01/2024", ""]]]
    service = _service(session_factory, lambda: extract_records(grids[0], "Campaigns"))

    service.run_once()
    grids.pop(0)
    result = service.run_once()

    assert result["changed"] is True
    db = session_factory()
    assert [row.campaign_code for row in db.query(SheetRow).all()] == ["3003"]


def test_empty_source_leaves_persisted_rows_untouched():
    _engine, session_factory = _build_session_factory()
    responses = [extract_records(GRID, "Campaigns"), []]
    service = _service(session_factory, lambda: responses.pop(0))

    service.run_once()
    result = service.run_once()

    assert result["ok"] is False
    assert result["reason"] == "empty_source"
    assert session_factory().query(SheetRow).count() == 3


def test_source_failure_is_reported_and_recorded():
    _engine, session_factory = _build_session_factory()

    def _broken_loader():
        raise SheetSourceError("timeout")

    service = _service(session_factory, _broken_loader)

    result = service.run_once()

    assert result["ok"] is False
    assert result["reason"] == "source_unavailable"
    db = session_factory()
    assert db.query(SheetRow).count() == 0
    assert db.query(SyncRun).filter(SyncRun.result == "error").count() == 1
    assert service.last_result["reason"] == "source_unavailable"


def test_overlapping_run_is_rejected_not_queued():
    _engine, session_factory = _build_session_factory()
    publisher = RecordingPublisher()
    entered = threading.Event()
    release = threading.Event()

    def _slow_loader():
        entered.set()
        release.wait(timeout=5)
        return extract_records(GRID, "Campaigns")

    service = _service(session_factory, _slow_loader, publisher)
    results = {}
    worker = threading.Thread(target=lambda: results.setdefault("first", service.run_once()))
    worker.start()
    assert entered.wait(timeout=5)

    second = service.run_once()
    release.set()
    worker.join(timeout=5)

    assert second == {"ok": True, "skipped": True, "reason": "sync_already_running", "running": True}
    assert results["first"]["ok"] is True
    assert results["first"]["changed"] is True
    assert len(publisher.events) == 1
    assert service.running is False


def test_fingerprint_state_is_per_service_instance():
    _engine, session_factory = _build_session_factory()
    loader = lambda: extract_records(GRID, "Campaigns")  # noqa: E731
    first_service = _service(session_factory, loader)
    second_service = _service(session_factory, loader)

    first_service.run_once()
    result = second_service.run_once()

    assert result["changed"] is True
    assert session_factory().query(SheetRow).count() == 3
