from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..deps import get_db, get_optional_sheet_sync
from ..models import SyncRun
from ..sheet_sync import SheetSyncService


router = APIRouter(prefix="/meta", tags=["meta"])


def _serialize_run(run: SyncRun) -> dict:
    return {
        "id": run.id,
        "kind": run.kind,
        "strategy": run.strategy,
        "result": run.result,
        "processed": int(run.processed or 0),
        "skipped": int(run.skipped or 0),
        "errors": int(run.errors or 0),
        "message": str(run.message or ""),
        "started_at": run.started_at.isoformat() if run.started_at else "",
        "finished_at": run.finished_at.isoformat() if run.finished_at else "",
    }


@router.get("/sync-status")
def sync_status(
    limit: int = Query(10, ge=1, le=100),
    kind: str | None = None,
    db: Session = Depends(get_db),
    service: SheetSyncService | None = Depends(get_optional_sheet_sync),
):
    query = db.query(SyncRun)
    if kind:
        query = query.filter(SyncRun.kind == kind)
    runs = query.order_by(SyncRun.id.desc()).limit(limit).all()
    return {
        "configured": service is not None,
        "running": bool(service.running) if service is not None else False,
        "strategy": service.strategy.name if service is not None else None,
        "last_result": service.last_result if service is not None else None,
        "runs": [_serialize_run(run) for run in runs],
    }
