import asyncio
import logging
from contextlib import suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import (
    APP_NAME,
    AUTO_SHEET_SYNC_ENABLED,
    AUTO_SHEET_SYNC_INTERVAL_SECONDS,
    AUTO_SHEET_SYNC_ON_START,
    CORS_ORIGINS,
    SHEET_SYNC_STRATEGY,
    SHEETS_EXCLUDED,
)
from .db import SessionLocal, init_db
from .events import WebSocketHub
from .routes import campaigns, events, health, leads, meta, sheets
from .sheet_source import build_default_source, load_sheet_records
from .sheet_sync import SheetSyncService, build_strategy


logger = logging.getLogger("uvicorn.error")


def build_sheet_sync_service(hub: WebSocketHub) -> SheetSyncService:
    source = build_default_source()
    return SheetSyncService(
        load_records=lambda: load_sheet_records(source, SHEETS_EXCLUDED),
        session_factory=SessionLocal,
        strategy=build_strategy(SHEET_SYNC_STRATEGY),
        publisher=hub,
    )


def create_app() -> FastAPI:
    app = FastAPI(title=APP_NAME)
    applied = init_db()
    if applied:
        logger.info("Database migrations applied: %s", ", ".join(applied))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(CORS_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    hub = WebSocketHub()
    service = build_sheet_sync_service(hub)
    app.state.event_hub = hub
    app.state.sheet_sync = service
    app.state.session_factory = SessionLocal

    app.include_router(health.router)
    app.include_router(meta.router)
    app.include_router(sheets.router)
    app.include_router(leads.router)
    app.include_router(campaigns.router)
    app.include_router(events.router)

    @app.on_event("startup")
    async def _bind_event_hub() -> None:
        hub.bind_loop(asyncio.get_running_loop())

    if AUTO_SHEET_SYNC_ENABLED:
        interval_seconds = max(5, int(AUTO_SHEET_SYNC_INTERVAL_SECONDS))

        def _run_auto_sheet_sync_once() -> None:
            try:
                result = service.run_once(trigger="scheduled")
                if result.get("skipped"):
                    logger.info("Auto sheet sync skipped: %s", result.get("reason", "unknown"))
                    return
                if not result.get("ok"):
                    logger.warning("Auto sheet sync failed: %s", result.get("error") or result.get("reason"))
                    return
                logger.info(
                    "Auto sheet sync ok: changed=%s rows=%s stats=%s",
                    result.get("changed"),
                    result.get("rows"),
                    result.get("stats"),
                )
            except Exception:
                logger.exception("Auto sheet sync failed")

        async def _auto_sheet_sync_loop(stop_event: asyncio.Event) -> None:
            if AUTO_SHEET_SYNC_ON_START and not stop_event.is_set():
                await asyncio.to_thread(_run_auto_sheet_sync_once)

            while not stop_event.is_set():
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
                    break
                except asyncio.TimeoutError:
                    await asyncio.to_thread(_run_auto_sheet_sync_once)

        @app.on_event("startup")
        async def _startup_auto_sheet_sync() -> None:
            stop_event = asyncio.Event()
            task = asyncio.create_task(_auto_sheet_sync_loop(stop_event))
            app.state.auto_sheet_sync_stop_event = stop_event
            app.state.auto_sheet_sync_task = task
            logger.info(
                "Auto sheet sync scheduler enabled (interval=%ss, on_start=%s, strategy=%s)",
                interval_seconds,
                AUTO_SHEET_SYNC_ON_START,
                service.strategy.name,
            )

        @app.on_event("shutdown")
        async def _shutdown_auto_sheet_sync() -> None:
            stop_event = getattr(app.state, "auto_sheet_sync_stop_event", None)
            task = getattr(app.state, "auto_sheet_sync_task", None)
            if stop_event is not None:
                stop_event.set()
            if task is not None:
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task

    return app


app = create_app()
