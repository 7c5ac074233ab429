import asyncio

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import UPLOAD_MAX_FILE_BYTES
from ..deps import get_db, get_event_hub
from ..engine.campaign_codes import match_campaign_code
from ..events import WebSocketHub
from ..lead_queries import accepted_count_batch, delivered_breakdown, lead_counts, lead_stats
from ..lead_upload import UploadedFile, UploadProcessingError, UploadRejected, run_lead_upload
from ..schemas import (
    AcceptedCountBatchRequest,
    AcceptedCountBatchResponse,
    DeliveredResponse,
    LeadCountsResponse,
    LeadStatsResponse,
    UploadResponse,
)
from .sheets import parse_date_bound


router = APIRouter(prefix="/leads", tags=["leads"])


def _normalize_code(raw: str) -> str:
    return match_campaign_code(raw) or str(raw or "").strip()


async def read_uploads(files: list[UploadFile]) -> list[UploadedFile]:
    items = []
    for upload in files:
        # One byte over the cap is enough to reject the file.
        content = await upload.read(UPLOAD_MAX_FILE_BYTES + 1)
        items.append(
            UploadedFile(
                filename=upload.filename or "",
                content=content,
                content_type=upload.content_type or "",
            )
        )
    return items


@router.post("/upload", response_model=UploadResponse)
async def upload_leads(
    files: list[UploadFile] = File(...),
    db: Session = Depends(get_db),
    hub: WebSocketHub | None = Depends(get_event_hub),
):
    items = await read_uploads(files)
    try:
        return await asyncio.to_thread(run_lead_upload, db, items, publisher=hub)
    except UploadRejected as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except UploadProcessingError as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc), "stats": exc.stats.as_dict()})
    except SQLAlchemyError:
        raise HTTPException(status_code=503, detail="Lead store unavailable")


@router.get("/counts", response_model=LeadCountsResponse)
def get_lead_counts(start: str | None = None, end: str | None = None, db: Session = Depends(get_db)):
    data = lead_counts(db, parse_date_bound(start, "start"), parse_date_bound(end, "end"))
    return {"success": True, "data": data}


@router.get("/stats/{code}", response_model=LeadStatsResponse)
def get_lead_stats(code: str, start: str | None = None, end: str | None = None, db: Session = Depends(get_db)):
    return lead_stats(db, _normalize_code(code), parse_date_bound(start, "start"), parse_date_bound(end, "end"))


@router.post("/accepted-count-batch", response_model=AcceptedCountBatchResponse)
def get_accepted_count_batch(payload: AcceptedCountBatchRequest, db: Session = Depends(get_db)):
    codes = [str(code).strip() for code in payload.itlCodes if str(code).strip()]
    if not codes:
        raise HTTPException(status_code=400, detail="itlCodes is required as a non-empty array.")
    return {"data": accepted_count_batch(db, codes, payload.start, payload.end)}


@router.get("/delivered/{code}", response_model=DeliveredResponse)
def get_delivered(code: str, start: str | None = None, end: str | None = None, db: Session = Depends(get_db)):
    return delivered_breakdown(
        db,
        _normalize_code(code),
        parse_date_bound(start, "start"),
        parse_date_bound(end, "end"),
    )
