from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import datetime
from pathlib import Path

from sqlalchemy.orm import Session

from .config import ATTACHMENT_MAX_FILES, ATTACHMENTS_DIR, UPLOAD_MAX_FILE_BYTES
from .events import (
    CAMPAIGN_UPDATE_CREATED_EVENT,
    CAMPAIGN_UPDATE_DELETED_EVENT,
    CAMPAIGN_UPDATE_EDITED_EVENT,
    EventPublisher,
    NullPublisher,
)
from .lead_upload import UploadedFile, UploadRejected
from .models import CampaignUpdate


logger = logging.getLogger(__name__)

ATTACHMENT_EXTENSIONS = {
    ".jpeg", ".jpg", ".png", ".gif", ".webp", ".bmp", ".svg",
    ".pdf", ".doc", ".docx", ".txt",
    ".xlsx", ".xls", ".csv",
    ".zip", ".ppt", ".pptx",
}
ATTACHMENT_URL_PREFIX = "/uploads/campaign-attachments"


class CampaignUpdateNotFound(LookupError):
    pass


def _atomic_write_bytes(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_bytes(payload)
    tmp.replace(path)


def _safe_original_name(name: str) -> str:
    return re.sub(r"[^\w.\- ]+", "_", Path(name or "file").name).strip() or "file"


def validate_attachments(files: list[UploadedFile]) -> None:
    if len(files) > ATTACHMENT_MAX_FILES:
        raise UploadRejected(f"At most {ATTACHMENT_MAX_FILES} attachments per update")
    for item in files:
        if item.extension not in ATTACHMENT_EXTENSIONS:
            raise UploadRejected(
                f"{item.filename}: only images, PDFs, documents, Excel, CSV, and ZIP files are allowed"
            )
        if len(item.content) > UPLOAD_MAX_FILE_BYTES:
            raise UploadRejected(f"{item.filename}: attachment exceeds {UPLOAD_MAX_FILE_BYTES // (1024 * 1024)} MB")


def store_attachments(files: list[UploadedFile], base_dir: Path | str = ATTACHMENTS_DIR) -> list[dict]:
    stored = []
    base = Path(base_dir)
    for item in files:
        stored_name = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:10]}{item.extension}"
        _atomic_write_bytes(base / stored_name, item.content)
        stored.append(
            {
                "filename": stored_name,
                "original_name": _safe_original_name(item.filename),
                "mimetype": item.content_type or "application/octet-stream",
                "size": len(item.content),
                "url": f"{ATTACHMENT_URL_PREFIX}/{stored_name}",
            }
        )
    return stored


def remove_attachments(attachments: list[dict], base_dir: Path | str = ATTACHMENTS_DIR) -> int:
    removed = 0
    base = Path(base_dir)
    for attachment in attachments or []:
        name = Path(str(attachment.get("filename") or "")).name
        if not name:
            continue
        path = base / name
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Unable to remove attachment %s: %s", path, exc)
    return removed


def serialize_update(update: CampaignUpdate) -> dict:
    return {
        "id": update.id,
        "campaign_id": update.campaign_id,
        "author_id": update.author_id,
        "author_name": update.author_name,
        "message": update.message,
        "attachments": list(update.attachments or []),
        "timestamp": update.timestamp.isoformat() if update.timestamp else None,
        "edited": bool(update.edited),
        "edited_at": update.edited_at.isoformat() if update.edited_at else None,
    }


def list_updates(db: Session, campaign_id: str) -> list[dict]:
    updates = (
        db.query(CampaignUpdate)
        .filter(CampaignUpdate.campaign_id == campaign_id)
        .order_by(CampaignUpdate.timestamp.asc(), CampaignUpdate.id.asc())
        .all()
    )
    return [serialize_update(update) for update in updates]


def create_update(
    db: Session,
    campaign_id: str,
    message: str | None,
    files: list[UploadedFile] | None = None,
    *,
    author_id: str | None = None,
    author_name: str = "",
    publisher: EventPublisher | None = None,
    attachments_dir: Path | str = ATTACHMENTS_DIR,
) -> dict:
    files = [item for item in (files or []) if item.filename]
    text = (message or "").strip()
    if not campaign_id.strip():
        raise UploadRejected("Campaign ID is required")
    if not text and not files:
        raise UploadRejected("Either a message or attachments are required")
    validate_attachments(files)

    attachments = store_attachments(files, attachments_dir)
    update = CampaignUpdate(
        campaign_id=campaign_id.strip(),
        author_id=author_id,
        author_name=(author_name or "").strip(),
        message=text,
        attachments=attachments,
        timestamp=datetime.utcnow(),
    )
    try:
        db.add(update)
        db.commit()
    except Exception:
        db.rollback()
        remove_attachments(attachments, attachments_dir)
        raise
    db.refresh(update)

    payload = serialize_update(update)
    (publisher or NullPublisher()).publish(CAMPAIGN_UPDATE_CREATED_EVENT, payload)
    return payload


def _get_update(db: Session, campaign_id: str, update_id: int) -> CampaignUpdate:
    update = (
        db.query(CampaignUpdate)
        .filter(CampaignUpdate.id == update_id, CampaignUpdate.campaign_id == campaign_id)
        .first()
    )
    if update is None:
        raise CampaignUpdateNotFound(f"Update {update_id} not found for campaign {campaign_id}")
    return update


def edit_update(
    db: Session,
    campaign_id: str,
    update_id: int,
    message: str,
    *,
    publisher: EventPublisher | None = None,
) -> dict:
    update = _get_update(db, campaign_id, update_id)
    text = (message or "").strip()
    if not text and not update.attachments:
        raise UploadRejected("Either a message or attachments are required")
    update.message = text
    update.edited = True
    update.edited_at = datetime.utcnow()
    db.commit()
    db.refresh(update)

    payload = serialize_update(update)
    (publisher or NullPublisher()).publish(CAMPAIGN_UPDATE_EDITED_EVENT, payload)
    return payload


def delete_update(
    db: Session,
    campaign_id: str,
    update_id: int,
    *,
    publisher: EventPublisher | None = None,
    attachments_dir: Path | str = ATTACHMENTS_DIR,
) -> dict:
    update = _get_update(db, campaign_id, update_id)
    attachments = list(update.attachments or [])
    db.delete(update)
    db.commit()
    removed = remove_attachments(attachments, attachments_dir)

    payload = {"campaign_id": campaign_id, "update_id": update_id}
    (publisher or NullPublisher()).publish(CAMPAIGN_UPDATE_DELETED_EVENT, payload)
    return {**payload, "removed_attachments": removed}
