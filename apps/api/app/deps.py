from fastapi import HTTPException, Request

from .db import SessionLocal
from .events import WebSocketHub
from .sheet_sync import SheetSyncService


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_optional_sheet_sync(request: Request) -> SheetSyncService | None:
    return getattr(request.app.state, "sheet_sync", None)


def get_sheet_sync(request: Request) -> SheetSyncService:
    service = get_optional_sheet_sync(request)
    if service is None:
        raise HTTPException(status_code=503, detail="Sheet sync is not configured")
    return service


def get_event_hub(request: Request) -> WebSocketHub | None:
    return getattr(request.app.state, "event_hub", None)
