from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from ..campaign_updates import (
    CampaignUpdateNotFound,
    create_update,
    delete_update,
    edit_update,
    list_updates,
)
from ..deps import get_db, get_event_hub
from ..events import WebSocketHub
from ..lead_upload import UploadRejected
from ..schemas import CampaignUpdateEditRequest
from .leads import read_uploads


router = APIRouter(prefix="/campaign-updates", tags=["campaign-updates"])


@router.get("/{campaign_id}")
def get_campaign_updates(campaign_id: str, db: Session = Depends(get_db)):
    return {"success": True, "updates": list_updates(db, campaign_id)}


@router.post("/{campaign_id}", status_code=201)
async def post_campaign_update(
    campaign_id: str,
    message: str | None = Form(None),
    author_id: str | None = Form(None),
    author_name: str = Form(""),
    attachments: list[UploadFile] = File(default=[]),
    db: Session = Depends(get_db),
    hub: WebSocketHub | None = Depends(get_event_hub),
):
    files = await read_uploads(attachments)
    try:
        update = create_update(
            db,
            campaign_id,
            message,
            files,
            author_id=author_id,
            author_name=author_name,
            publisher=hub,
        )
    except UploadRejected as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"success": True, "message": "Update created successfully", "update": update}


@router.put("/{campaign_id}/{update_id}")
def put_campaign_update(
    campaign_id: str,
    update_id: int,
    payload: CampaignUpdateEditRequest,
    db: Session = Depends(get_db),
    hub: WebSocketHub | None = Depends(get_event_hub),
):
    try:
        update = edit_update(db, campaign_id, update_id, payload.message, publisher=hub)
    except CampaignUpdateNotFound:
        raise HTTPException(status_code=404, detail="Update not found")
    except UploadRejected as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"success": True, "update": update}


@router.delete("/{campaign_id}/{update_id}")
def remove_campaign_update(
    campaign_id: str,
    update_id: int,
    db: Session = Depends(get_db),
    hub: WebSocketHub | None = Depends(get_event_hub),
):
    try:
        result = delete_update(db, campaign_id, update_id, publisher=hub)
    except CampaignUpdateNotFound:
        raise HTTPException(status_code=404, detail="Update not found")
    return {"success": True, "message": "Update deleted successfully", **result}
