"""Realtime hub: websocket `/hub/telemetry`.

Protocolo (JSON por mensaje):
1. Server → {type: "connected", connectionId}
2. Client → {type: "joinTenant", tenant}          (repetible, aditivo)
   Server → {type: "joined", tenant}
3. Server → {type: "measurementReceived", payload: {...}}
4. Client → {type: "publishMeasurement", payload: {...}}   (productores)
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
import uvicorn

from common.config import Settings, get_settings
from common.contracts import RealtimeMeasurement
from common.logging_setup import configure_logging

from .hub import TelemetryHub
from .relay import RedisRelay

logger = logging.getLogger(__name__)


async def _send_error(websocket: WebSocket, error: str) -> None:
    await websocket.send_json({"type": "error", "error": error})


async def handle_client_message(hub: TelemetryHub, connection_id: str, websocket: WebSocket, raw: str) -> None:
    try:
        message = json.loads(raw)
    except ValueError:
        await _send_error(websocket, "Invalid JSON")
        return
    if not isinstance(message, dict):
        await _send_error(websocket, "Expected a JSON object")
        return

    msg_type = message.get("type")

    if msg_type == "joinTenant":
        tenant = message.get("tenant")
        if not isinstance(tenant, str) or not tenant.strip():
            await _send_error(websocket, "joinTenant requires a non-empty 'tenant'")
            return
        hub.join_tenant(connection_id, tenant.strip())
        await websocket.send_json({"type": "joined", "tenant": tenant.strip()})
        return

    if msg_type == "publishMeasurement":
        try:
            measurement = RealtimeMeasurement.model_validate(message.get("payload") or {})
        except ValidationError as e:
            await _send_error(websocket, f"Invalid measurement ({e.error_count()} errors)")
            return
        await hub.publish_measurement(measurement)
        return

    await _send_error(websocket, f"Unknown message type: {msg_type}")


def create_app(
    settings: Optional[Settings] = None,
    hub: Optional[TelemetryHub] = None,
    relay_enabled: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    hub = hub or TelemetryHub(send_timeout_seconds=settings.hub_send_timeout_seconds)
    relay = RedisRelay(
        hub,
        url=settings.redis_url,
        channel=settings.realtime_channel,
        reconnect_backoff_seconds=settings.realtime_reconnect_backoff_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if relay_enabled:
            relay.start()
        logger.info("[HUB] Started")
        try:
            yield
        finally:
            await relay.stop()

    app = FastAPI(title="Realtime Hub", version="1.0.0", lifespan=lifespan)
    app.state.hub = hub
    app.state.relay = relay
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "connections": hub.connection_count,
            "relay": relay.stats,
        }

    @app.websocket("/hub/telemetry")
    async def telemetry(websocket: WebSocket):
        await websocket.accept()
        connection_id = hub.connect(websocket)
        try:
            await websocket.send_json({"type": "connected", "connectionId": connection_id})
            while True:
                raw = await websocket.receive_text()
                await handle_client_message(hub, connection_id, websocket, raw)
        except WebSocketDisconnect:
            logger.debug("[HUB] Client closed id=%s", connection_id)
        finally:
            hub.disconnect(connection_id)

    return app


def run() -> None:
    """Entry point: `realtime-hub` (host/port via HUB_HOST / HUB_PORT)."""
    uvicorn.run(
        create_app(),
        host=os.getenv("HUB_HOST", "0.0.0.0"),
        port=int(os.getenv("HUB_PORT", "5103")),
    )
