from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL


def _normalize_database_url(raw_url: str) -> str:
    url = str(raw_url or "").strip()
    if url.startswith("postgres://"):
        return "postgresql+psycopg2://" + url[len("postgres://") :]
    if url.startswith("postgresql://") and "+psycopg" not in url and "+psycopg2" not in url:
        return "postgresql+psycopg2://" + url[len("postgresql://") :]
    return url


def _sqlite_file_path(url: str) -> Path | None:
    if not url.startswith("sqlite:///"):
        return None
    raw_path = url[len("sqlite:///") :]
    if not raw_path or raw_path == ":memory:":
        return None
    return Path(raw_path).expanduser()


DATABASE_URL_NORMALIZED = _normalize_database_url(DATABASE_URL)
IS_SQLITE = DATABASE_URL_NORMALIZED.startswith("sqlite")
SQLITE_FILE = _sqlite_file_path(DATABASE_URL_NORMALIZED)

engine_kwargs: dict[str, object] = {"pool_pre_ping": True}
connect_args: dict[str, object] = {}
if IS_SQLITE:
    # Sync jobs write from worker threads while requests read.
    connect_args = {"check_same_thread": False, "timeout": 30}
    if SQLITE_FILE is not None:
        SQLITE_FILE.parent.mkdir(parents=True, exist_ok=True)
else:
    engine_kwargs.update(
        {
            "pool_recycle": 1800,
            "pool_size": 5,
            "max_overflow": 10,
            "pool_timeout": 30,
        }
    )

engine = create_engine(DATABASE_URL_NORMALIZED, connect_args=connect_args, **engine_kwargs)

if SQLITE_FILE is not None:

    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db(bind=None) -> list[str]:
    """Create tables, then run numbered migrations; returns the versions applied."""
    from . import models  # noqa: F401
    from .migrations import apply_pending_migrations

    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    return apply_pending_migrations(target)
