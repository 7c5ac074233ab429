from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..deps import get_db, get_sheet_sync
from ..engine.dates import usable_date
from ..engine.status_summary import summarize_statuses
from ..models import SheetRow
from ..sheet_sync import SheetSyncService, load_sheet_rows


router = APIRouter(prefix="/sheets", tags=["sheets"])

UNAVAILABLE_REASONS = {"source_unavailable", "store_unavailable"}


def parse_date_bound(value: str | None, name: str) -> date | None:
    if value is None or not str(value).strip():
        return None
    parsed = usable_date(str(value).strip())
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Invalid {name} date: {value}")
    return parsed


@router.get("/data")
def sheet_data(start: str | None = None, end: str | None = None, db: Session = Depends(get_db)):
    rows = load_sheet_rows(db, parse_date_bound(start, "start"), parse_date_bound(end, "end"))
    return {"success": True, "count": len(rows), "data": rows}


@router.get("/status-summary")
def status_summary(db: Session = Depends(get_db)):
    statuses = [status for (status,) in db.query(SheetRow.status).all()]
    return {"success": True, "data": summarize_statuses(statuses)}


@router.post("/sync")
def trigger_sheet_sync(service: SheetSyncService = Depends(get_sheet_sync)):
    result = service.run_once(trigger="manual")
    if not result.get("ok") and result.get("reason") in UNAVAILABLE_REASONS:
        raise HTTPException(status_code=503, detail=result.get("error") or result.get("reason"))
    return {key: value for key, value in result.items() if key != "data"}
