from sqlalchemy import create_engine, inspect
from sqlalchemy.pool import StaticPool

from apps.api.app.db import Base, init_db
from apps.api.app.migrations import apply_pending_migrations, get_applied_versions, pending_migrations


def _build_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


def test_migrations_apply_once_in_order():
    engine = _build_engine()

    applied = apply_pending_migrations(engine)

    assert applied == ["001_sheet_rows_deadline_index", "002_sheet_rows_status_index"]
    assert get_applied_versions(engine) == set(applied)
    assert pending_migrations(engine) == []
    assert apply_pending_migrations(engine) == []


def test_migrations_add_indexes():
    engine = _build_engine()

    apply_pending_migrations(engine)

    index_names = {index["name"] for index in inspect(engine).get_indexes("sheet_rows")}
    assert {"ix_sheet_rows_deadline", "ix_sheet_rows_status", "ix_sheet_rows_natural_key"} <= index_names


def test_init_db_creates_tables_then_migrates():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    applied = init_db(engine)

    assert applied == ["001_sheet_rows_deadline_index", "002_sheet_rows_status_index"]
    assert {"sheet_rows", "lead_reports", "campaign_updates", "sync_runs"} <= set(inspect(engine).get_table_names())
