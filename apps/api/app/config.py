import os


def get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None and value != "" else default


def get_env_bool(name: str, default: bool) -> bool:
    raw_default = "1" if default else "0"
    raw = get_env(name, raw_default).strip().lower()
    return raw in {"1", "true", "yes", "y", "on"}


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = get_env(name, str(default)).strip()
    try:
        parsed = int(raw)
    except (TypeError, ValueError):
        parsed = int(default)
    if min_value is not None and parsed < min_value:
        parsed = min_value
    return parsed


def get_env_optional(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    clean = str(raw).strip()
    return clean or None


def get_env_list(name: str, default: tuple[str, ...], sep: str = ",") -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return tuple(default)
    return tuple(item.strip() for item in raw.split(sep) if item.strip())


APP_NAME = get_env("APP_NAME", "Campaign Dashboard API")
DATABASE_URL = get_env("DATABASE_URL", "sqlite:///./data/db/app.db")
CORS_ORIGINS = get_env_list("CORS_ORIGINS", ("*",))

SHEETS_SPREADSHEET_ID = get_env_optional("SHEETS_SPREADSHEET_ID")
SHEETS_CREDENTIALS_FILE = get_env("SHEETS_CREDENTIALS_FILE", "./service-account.json")
SHEETS_RANGE = get_env("SHEETS_RANGE", "A1:AG").strip()
# Tab titles contain commas and apostrophes, so the list is pipe separated.
SHEETS_EXCLUDED = get_env_list(
    "SHEETS_EXCLUDED",
    ("Feasibilities", "Campagin Managers' - Updates", "HTMLs & Feedback"),
    sep="|",
)
SHEETS_FETCH_TIMEOUT_SECONDS = get_env_int("SHEETS_FETCH_TIMEOUT_SECONDS", 30, min_value=1)
SHEETS_FETCH_RETRIES = get_env_int("SHEETS_FETCH_RETRIES", 3, min_value=0)

SHEET_SYNC_STRATEGY = get_env("SHEET_SYNC_STRATEGY", "replace").strip().lower()
AUTO_SHEET_SYNC_ENABLED = get_env_bool("AUTO_SHEET_SYNC_ENABLED", True)
AUTO_SHEET_SYNC_INTERVAL_SECONDS = get_env_int("AUTO_SHEET_SYNC_INTERVAL_SECONDS", 60, min_value=5)
AUTO_SHEET_SYNC_ON_START = get_env_bool("AUTO_SHEET_SYNC_ON_START", True)

UPLOAD_MAX_FILE_BYTES = get_env_int("UPLOAD_MAX_FILE_BYTES", 10 * 1024 * 1024, min_value=1)
UPLOAD_MAX_FILES = get_env_int("UPLOAD_MAX_FILES", 1000, min_value=1)
LEAD_UPLOAD_MODE = get_env("LEAD_UPLOAD_MODE", "replace").strip().lower()
LEAD_UPSERT_BATCH_SIZE = get_env_int("LEAD_UPSERT_BATCH_SIZE", 500, min_value=1)

ATTACHMENTS_DIR = get_env("ATTACHMENTS_DIR", "./data/uploads/campaign-attachments")
ATTACHMENT_MAX_FILES = get_env_int("ATTACHMENT_MAX_FILES", 5, min_value=1)
