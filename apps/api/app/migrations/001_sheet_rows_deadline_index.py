from sqlalchemy import text


def upgrade(conn) -> None:
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_sheet_rows_deadline ON sheet_rows (deadline)"))


def downgrade(conn) -> None:
    conn.execute(text("DROP INDEX IF EXISTS ix_sheet_rows_deadline"))
