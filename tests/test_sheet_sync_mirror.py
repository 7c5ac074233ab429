from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from apps.api.app.db import Base
from apps.api.app.engine.rows import extract_records
from apps.api.app.models import SheetRow, SyncRun
from apps.api.app.sheet_source import load_sheet_records
from apps.api.app.sheet_sync import MirrorStrategy, ReplaceStrategy, SheetSyncService, build_strategy


HEADERS = ["ITL", "Campaign Name", "Status", "Start Date", "Target"]
SOURCE = [
    HEADERS,
    ["ITL-1001", "Alpha", "Live", "03/01/2024", "100"],
    ["ITL-1002", "Beta", "Paused", "03/02/2024", "abc"],
    ["ITL-1003", "Gamma", "Completed", "03/03/2024", "50"],
    ["ITL-1004", "Delta", "", "03/04/2024", ""],
]
CHANGED_SOURCE = [
    HEADERS,
    ["ITL-1001", "Alpha", "Live", "03/01/2024", "100"],
    ["ITL-1002", "Beta", "Live", "03/02/2024", "abc"],
    ["ITL-1005", "Epsilon", "Live", "03/05/2024", "10"],
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
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _rows_by_code(session_factory):
    db = session_factory()
    try:
        return {row.campaign_code: row for row in db.query(SheetRow).all()}
    finally:
        db.close()


def test_mirror_upserts_rows_and_skips_rows_without_status():
    session_factory = _build_session_factory()
    service = SheetSyncService(
        load_records=lambda: extract_records(SOURCE, "Campaigns"),
        session_factory=session_factory,
        strategy=MirrorStrategy(),
    )

    result = service.run_once()

    assert result["ok"] is True
    assert result["inserted"] == 3
    assert result["stats"] == {"processed": 3, "skipped": 1, "errors": 0}
    rows = _rows_by_code(session_factory)
    assert sorted(rows) == ["1001", "1002", "1003"]
    assert rows["1001"].target_leads == 100
    assert rows["1002"].target_leads == 0
    assert rows["1003"].start_date == date(2024, 3, 3)


def test_mirror_diff_touches_only_changed_keys_and_prunes_missing():
    session_factory = _build_session_factory()
    publisher = RecordingPublisher()
    sources = [SOURCE]
    service = SheetSyncService(
        load_records=lambda: extract_records(sources[-1], "Campaigns"),
        session_factory=session_factory,
        strategy=MirrorStrategy(),
        publisher=publisher,
    )
    service.run_once()
    before = _rows_by_code(session_factory)

    sources.append(CHANGED_SOURCE)
    result = service.run_once()

    after = _rows_by_code(session_factory)
    assert (result["inserted"], result["updated"], result["deleted"]) == (1, 1, 1)
    assert sorted(after) == ["1001", "1002", "1005"]
    assert after["1001"].id == before["1001"].id
    assert after["1001"].synced_at == before["1001"].synced_at
    assert after["1002"].id == before["1002"].id
    assert after["1002"].status == "Live"
    assert [name for name, _payload in publisher.events] == ["sheetDataUpdated", "sheetDataUpdated"]
    assert {row["campaign_code"] for row in publisher.events[-1][1]} == {"1001", "1002", "1005"}


def test_mirror_pass_without_changes_still_publishes_current_rows():
    session_factory = _build_session_factory()
    publisher = RecordingPublisher()
    service = SheetSyncService(
        load_records=lambda: extract_records(SOURCE, "Campaigns"),
        session_factory=session_factory,
        strategy=MirrorStrategy(),
        publisher=publisher,
    )
    service.run_once()
    before = _rows_by_code(session_factory)

    result = service.run_once()

    after = _rows_by_code(session_factory)
    assert result["changed"] is False
    assert (result["inserted"], result["updated"], result["deleted"]) == (0, 0, 0)
    assert {code: row.synced_at for code, row in after.items()} == {
        code: row.synced_at for code, row in before.items()
    }
    assert len(publisher.events) == 2


def test_duplicate_source_keys_keep_last_row():
    session_factory = _build_session_factory()
    source = [
        HEADERS,
        ["ITL-1001", "Alpha", "Live", "03/01/2024", "100"],
        ["ITL-1001", "Alpha v2", "Paused", "03/01/2024", "120"],
    ]
    service = SheetSyncService(
        load_records=lambda: extract_records(source, "Campaigns"),
        session_factory=session_factory,
        strategy=MirrorStrategy(),
    )

    result = service.run_once()

    assert result["stats"] == {"processed": 1, "skipped": 1, "errors": 0}
    rows = _rows_by_code(session_factory)
    assert len(rows) == 1
    assert rows["1001"].status == "Paused"
    assert rows["1001"].target_leads == 120


def test_build_strategy_by_name():
    assert isinstance(build_strategy("replace"), ReplaceStrategy)
    assert isinstance(build_strategy(" Mirror "), MirrorStrategy)
    with pytest.raises(ValueError):
        build_strategy("append")


class TwoTabSource:
    def __init__(self):
        self.timed_out = set()

    def sheet_titles(self):
        return ["A", "B"]

    def fetch_grid(self, title):
        if title in self.timed_out:
            raise TimeoutError(f"{title} timed out")
        code = "ITL-1001" if title == "A" else "ITL-2002"
        return [HEADERS, [code, f"Tab {title}", "Live", "03/01/2024", "10"]]


@pytest.mark.parametrize("strategy_name", ["mirror", "replace"])
def test_tab_timeout_leaves_persisted_rows_untouched(strategy_name):
    session_factory = _build_session_factory()
    publisher = RecordingPublisher()
    source = TwoTabSource()
    service = SheetSyncService(
        load_records=lambda: load_sheet_records(source, excluded=()),
        session_factory=session_factory,
        strategy=build_strategy(strategy_name),
        publisher=publisher,
    )
    assert service.run_once()["ok"] is True
    before = {code: (row.id, row.synced_at) for code, row in _rows_by_code(session_factory).items()}

    source.timed_out.add("B")
    result = service.run_once()

    after = {code: (row.id, row.synced_at) for code, row in _rows_by_code(session_factory).items()}
    assert result["ok"] is False
    assert result["reason"] == "source_unavailable"
    assert sorted(before) == ["1001", "2002"]
    assert after == before
    assert len(publisher.events) == 1

    db = session_factory()
    try:
        assert [run.result for run in db.query(SyncRun).order_by(SyncRun.id.asc()).all()] == ["ok", "error"]
    finally:
        db.close()
