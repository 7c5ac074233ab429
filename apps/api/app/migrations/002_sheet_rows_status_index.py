from sqlalchemy import text


def upgrade(conn) -> None:
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_sheet_rows_status ON sheet_rows (status)"))
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_sync_runs_kind_started ON sync_runs (kind, started_at)"))


def downgrade(conn) -> None:
    conn.execute(text("DROP INDEX IF EXISTS ix_sync_runs_kind_started"))
    conn.execute(text("DROP INDEX IF EXISTS ix_sheet_rows_status"))
