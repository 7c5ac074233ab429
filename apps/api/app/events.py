from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Protocol

from fastapi import WebSocket


SHEET_DATA_EVENT = "sheetDataUpdated"
LEAD_REPORTS_EVENT = "leadReportsUpdated"
CAMPAIGN_UPDATE_CREATED_EVENT = "new-campaign-update"
CAMPAIGN_UPDATE_EDITED_EVENT = "campaign-update-edited"
CAMPAIGN_UPDATE_DELETED_EVENT = "campaign-update-deleted"

# Events whose last payload is replayed to every new subscriber.
CACHED_EVENTS = frozenset({SHEET_DATA_EVENT})

_logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    def publish(self, event: str, payload: Any) -> None: ...


class NullPublisher:
    def publish(self, event: str, payload: Any) -> None:
        _logger.debug("No subscribers attached, dropping %s", event)


class WebSocketHub:
    """Broadcasts events to every connected websocket.

    ``publish`` may be called from worker threads (the sync job runs in one);
    the actual sends are scheduled on the loop bound at startup.
    """

    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()
        self._lock = threading.Lock()
        self._latest: dict[str, Any] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task] = set()

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    @property
    def pending_broadcasts(self) -> int:
        return len(self._tasks)

    def latest(self, event: str) -> Any | None:
        with self._lock:
            return self._latest.get(event)

    def remember(self, event: str, payload: Any) -> None:
        if event in CACHED_EVENTS:
            with self._lock:
                self._latest[event] = payload

    async def connect(self, websocket: WebSocket, load_initial: Callable[[], Any] | None = None) -> None:
        await websocket.accept()
        with self._lock:
            self._clients.add(websocket)
        cached = self.latest(SHEET_DATA_EVENT)
        if cached is None and load_initial is not None:
            cached = await asyncio.to_thread(load_initial)
            self.remember(SHEET_DATA_EVENT, cached)
        if cached is not None:
            await websocket.send_json({"event": SHEET_DATA_EVENT, "data": cached})

    def disconnect(self, websocket: WebSocket) -> None:
        with self._lock:
            self._clients.discard(websocket)

    async def broadcast(self, message: dict[str, Any]) -> None:
        with self._lock:
            clients = list(self._clients)
        for websocket in clients:
            try:
                await websocket.send_json(message)
            except Exception as exc:
                _logger.info("Dropping websocket subscriber after failed send: %s", exc)
                self.disconnect(websocket)

    def publish(self, event: str, payload: Any) -> None:
        self.remember(event, payload)
        loop = self._loop
        if loop is None or loop.is_closed():
            _logger.debug("Event loop not bound, %s not broadcast", event)
            return
        message = {"event": event, "data": payload}
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            task = loop.create_task(self.broadcast(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            asyncio.run_coroutine_threadsafe(self.broadcast(message), loop)
