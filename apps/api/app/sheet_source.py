from __future__ import annotations

import logging
from typing import Iterable, Protocol, Sequence

import google_auth_httplib2
import httplib2
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import (
    SHEETS_CREDENTIALS_FILE,
    SHEETS_EXCLUDED,
    SHEETS_FETCH_RETRIES,
    SHEETS_FETCH_TIMEOUT_SECONDS,
    SHEETS_RANGE,
    SHEETS_SPREADSHEET_ID,
)
from .engine.rows import extract_records
from .utils.retry import retry_with_backoff


logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]


class SheetSourceError(RuntimeError):
    """The spreadsheet source could not be read."""


class SheetRangeError(ValueError):
    """The API rejected one tab's range; the rest of the spreadsheet is readable."""


class SheetSource(Protocol):
    def sheet_titles(self) -> list[str]: ...

    def fetch_grid(self, title: str) -> list[list[object]]: ...


def quote_sheet_title(title: str) -> str:
    return "'" + str(title).replace("'", "''") + "'"


class GoogleSheetSource:
    def __init__(
        self,
        spreadsheet_id: str,
        credentials_file: str,
        range_suffix: str = "A1:AG",
        timeout_seconds: int = 30,
        retries: int = 3,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.credentials_file = credentials_file
        self.range_suffix = range_suffix
        self.timeout_seconds = timeout_seconds
        self.retries = retries
        self._service = None

    def _sheets(self):
        if self._service is None:
            creds = service_account.Credentials.from_service_account_file(
                self.credentials_file, scopes=SCOPES
            )
            http = google_auth_httplib2.AuthorizedHttp(
                creds, http=httplib2.Http(timeout=self.timeout_seconds)
            )
            self._service = build("sheets", "v4", http=http, cache_discovery=False)
        return self._service.spreadsheets()

    def sheet_titles(self) -> list[str]:
        def _call():
            return self._sheets().get(spreadsheetId=self.spreadsheet_id, fields="sheets.properties.title").execute()

        payload = retry_with_backoff(_call, retries=self.retries)
        return [
            str(sheet.get("properties", {}).get("title", ""))
            for sheet in payload.get("sheets", [])
            if sheet.get("properties", {}).get("title")
        ]

    def fetch_grid(self, title: str) -> list[list[object]]:
        a1_range = f"{quote_sheet_title(title)}!{self.range_suffix}"

        def _call():
            try:
                return self._sheets().values().get(spreadsheetId=self.spreadsheet_id, range=a1_range).execute()
            except HttpError as exc:
                status = int(getattr(exc.resp, "status", 0) or 0)
                # 429 and 5xx are transient; other 4xx mean this range is unreadable.
                if 400 <= status < 500 and status != 429:
                    raise SheetRangeError(f"{a1_range}: HTTP {status}") from exc
                raise

        payload = retry_with_backoff(_call, retries=self.retries, give_up=(SheetRangeError,))
        return payload.get("values", [])


def build_default_source() -> GoogleSheetSource | None:
    if not SHEETS_SPREADSHEET_ID:
        return None
    return GoogleSheetSource(
        spreadsheet_id=SHEETS_SPREADSHEET_ID,
        credentials_file=SHEETS_CREDENTIALS_FILE,
        range_suffix=SHEETS_RANGE,
        timeout_seconds=SHEETS_FETCH_TIMEOUT_SECONDS,
        retries=SHEETS_FETCH_RETRIES,
    )


def load_sheet_records(
    source: SheetSource | None,
    excluded: Iterable[str] = SHEETS_EXCLUDED,
) -> list[dict[str, object]]:
    """Read every non-excluded tab and extract its records in sheet order.

    Any transport failure, timeout or exhausted retry aborts the whole read
    with ``SheetSourceError`` so a partial spreadsheet never reaches the
    store. Only a tab whose range the API rejects, or whose grid cannot be
    parsed, is skipped.
    """
    if source is None:
        raise SheetSourceError("Spreadsheet source is not configured (SHEETS_SPREADSHEET_ID)")

    skip = {str(title).strip() for title in excluded}
    try:
        titles = source.sheet_titles()
    except Exception as exc:
        raise SheetSourceError(f"Unable to list spreadsheet tabs: {exc}") from exc

    records: list[dict[str, object]] = []
    for title in titles:
        if title.strip() in skip:
            continue
        try:
            grid: Sequence[Sequence[object]] = source.fetch_grid(title)
        except SheetRangeError as exc:
            logger.warning("Skipping sheet %r: %s", title, exc)
            continue
        except Exception as exc:
            raise SheetSourceError(f"Unable to read sheet {title!r}: {exc}") from exc
        try:
            sheet_records = extract_records(grid, title)
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping malformed sheet %r: %s", title, exc)
            continue
        logger.debug("Sheet %r yielded %s records", title, len(sheet_records))
        records.extend(sheet_records)
    return records
