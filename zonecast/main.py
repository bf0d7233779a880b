import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from zonecast.db import engine as default_engine, ensure_sqlite_schema, make_session_factory
from zonecast.api import content, schedule, zones
from zonecast.services.context import AppContext
from zonecast.services.realtime import ADMIN_CHANNEL, SyncHub
from zonecast.services.stores import ContentValidationError, RecordNotFoundError, ScheduleValidationError

logger = logging.getLogger(__name__)

API_KEY = os.getenv("ZONECAST_API_KEY", "").strip()
SERVER_PORT = int(os.getenv("ZONECAST_SERVER_PORT", "3000"))
SCHEDULE_MONITOR_SEC = int(os.getenv("ZONECAST_SCHEDULE_MONITOR_SEC", "60"))
QUIET_ACCESS_LOG = os.getenv("ZONECAST_QUIET_ACCESS_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}
QUIET_WEBSOCKET_LOG = os.getenv("ZONECAST_QUIET_WEBSOCKET_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}

if QUIET_ACCESS_LOG:
    # Keep warning/error lines, suppress normal access noise (200/201 etc).
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

if QUIET_WEBSOCKET_LOG:
    # Displays drop off the network all the time; their reconnect logic handles it.
    logging.getLogger("websockets").setLevel(logging.CRITICAL)
    logging.getLogger("uvicorn.protocols.websockets").setLevel(logging.CRITICAL)


async def _schedule_monitor(hub: SyncHub) -> None:
    # Windows open and close with the clock, not only on mutations.
    while True:
        await asyncio.sleep(SCHEDULE_MONITOR_SEC)
        try:
            await hub.refresh_all_zones()
        except Exception:
            logger.exception("Schedule monitor refresh failed")


async def _send_unknown_zone(websocket: WebSocket, zone: str) -> None:
    await websocket.send_text(json.dumps({"type": "error", "payload": {"detail": f"Unknown zone: {zone}"}}))


async def _handle_client_message(ctx: AppContext, websocket: WebSocket, session_id: str, raw: str) -> None:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Ignoring malformed message from %s", session_id)
        return
    if not isinstance(message, dict):
        return

    message_type = message.get("type")
    payload = message.get("payload") or {}
    if not isinstance(payload, dict):
        logger.debug("Ignoring %r message with non-object payload from %s", message_type, session_id)
        return
    zone = str(payload.get("zone") or "").strip()

    if message_type == "joinZone":
        if zone != ADMIN_CHANNEL and not ctx.zones.exists(zone):
            await _send_unknown_zone(websocket, zone)
            return
        await ctx.hub.join(session_id, zone)
    elif message_type == "leaveZone":
        await ctx.hub.leave(session_id, zone)
    elif message_type == "requestContent":
        target = zone or ctx.hub.zone_of(session_id)
        if not target or target == ADMIN_CHANNEL:
            return
        if not ctx.zones.exists(target):
            await _send_unknown_zone(websocket, target)
            return
        await ctx.hub.push_active_set(session_id, target)
    elif message_type == "ping":
        await websocket.send_text(
            json.dumps(
                {
                    "type": "pong",
                    "payload": {"sent_at": payload.get("sent_at")},
                    "ts": datetime.now(timezone.utc).isoformat(),
                }
            )
        )
    else:
        logger.debug("Ignoring unknown message type %r from %s", message_type, session_id)


def create_app(bind: Engine | None = None) -> FastAPI:
    target_engine = bind or default_engine
    ctx = AppContext.build(make_session_factory(target_engine))

    app = FastAPI(title="zonecast")
    app.state.context = ctx
    app.state.tasks = []
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root():
        return {
            "ok": True,
            "service": "zonecast",
            "time_utc": datetime.now(timezone.utc).isoformat(),
            "docs": "/docs",
        }

    @app.get("/healthz")
    def healthz():
        return {"ok": True, "server_port": SERVER_PORT, "revision": ctx.hub.revision}

    @app.websocket("/ws/updates")
    async def ws_updates(websocket: WebSocket):
        session_id = await ctx.hub.connect(websocket)
        try:
            while True:
                raw = await websocket.receive_text()
                await _handle_client_message(ctx, websocket, session_id, raw)
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("Websocket session %s failed", session_id)
        finally:
            await ctx.hub.disconnect(session_id)

    @app.on_event("startup")
    async def startup_events() -> None:
        ensure_sqlite_schema(target_engine)
        app.state.tasks = [
            asyncio.create_task(ctx.hub.run()),
            asyncio.create_task(_schedule_monitor(ctx.hub)),
        ]

    @app.on_event("shutdown")
    async def shutdown_events() -> None:
        for task in app.state.tasks:
            task.cancel()
        for task in app.state.tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        app.state.tasks = []

    @app.middleware("http")
    async def api_key_middleware(request: Request, call_next):
        if not API_KEY:
            return await call_next(request)
        path = request.url.path
        if path.startswith("/docs") or path.startswith("/openapi.json") or path.startswith("/redoc") or path == "/healthz":
            return await call_next(request)
        if request.headers.get("X-API-Key") != API_KEY:
            return JSONResponse({"detail": "Unauthorized"}, status_code=401)
        return await call_next(request)

    @app.exception_handler(ContentValidationError)
    @app.exception_handler(ScheduleValidationError)
    async def validation_error_handler(request: Request, exc: ValueError):
        return JSONResponse({"detail": str(exc)}, status_code=400)

    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError):
        return JSONResponse({"detail": str(exc)}, status_code=404)

    app.include_router(content.router)
    app.include_router(schedule.router)
    app.include_router(zones.router)
    return app


app = create_app()
