from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..db import SessionLocal
from ..sheet_sync import load_sheet_rows


router = APIRouter(tags=["events"])


def _initial_loader(app):
    service = getattr(app.state, "sheet_sync", None)
    if service is not None:
        return service.current_data

    session_factory = getattr(app.state, "session_factory", SessionLocal)

    def _load() -> list[dict]:
        db = session_factory()
        try:
            return load_sheet_rows(db)
        finally:
            db.close()

    return _load


@router.websocket("/events/ws")
async def events_socket(websocket: WebSocket):
    hub = websocket.app.state.event_hub
    await hub.connect(websocket, load_initial=_initial_loader(websocket.app))
    try:
        while True:
            # Clients only listen; incoming frames are ignored.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
