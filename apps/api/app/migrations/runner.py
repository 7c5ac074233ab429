from __future__ import annotations

import importlib.util
import logging
from pathlib import Path

from sqlalchemy import text


logger = logging.getLogger(__name__)
MIGRATIONS_DIR = Path(__file__).resolve().parent
MIGRATION_GLOB = "[0-9][0-9][0-9]_*.py"


def ensure_migrations_table(engine) -> None:
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version VARCHAR(64) PRIMARY KEY,
                    applied_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
        )


def get_applied_versions(engine) -> set[str]:
    with engine.connect() as conn:
        return {str(row[0]) for row in conn.execute(text("SELECT version FROM schema_migrations"))}


def _load_module(path: Path):
    spec = importlib.util.spec_from_file_location(f"campaign_dashboard_migration_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Cannot load migration module: {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    if not hasattr(module, "upgrade"):
        raise RuntimeError(f"Migration {path.stem} missing upgrade()")
    return module


def pending_migrations(engine, directory: Path = MIGRATIONS_DIR) -> list[Path]:
    ensure_migrations_table(engine)
    applied = get_applied_versions(engine)
    return [path for path in sorted(directory.glob(MIGRATION_GLOB)) if path.stem not in applied]


def apply_pending_migrations(engine, directory: Path = MIGRATIONS_DIR) -> list[str]:
    """Run every numbered migration not yet recorded, each in its own transaction.

    Tables come from ``Base.metadata.create_all`` first, so migrations only
    adjust what the models cannot express (extra indexes, data fixes).
    """
    applied: list[str] = []
    for path in pending_migrations(engine, directory):
        version = path.stem
        module = _load_module(path)
        logger.info("Applying migration %s", version)
        try:
            with engine.begin() as conn:
                module.upgrade(conn)
                conn.execute(
                    text(
                        "INSERT INTO schema_migrations (version, applied_at) "
                        "VALUES (:version, CURRENT_TIMESTAMP)"
                    ),
                    {"version": version},
                )
        except Exception:
            logger.error("Migration failed: %s", version, exc_info=True)
            raise
        applied.append(version)
    if applied:
        logger.info("Migrations applied: %s", ", ".join(applied))
    return applied
