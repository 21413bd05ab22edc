"""``/ws`` live channel: dashboards subscribe here for account updates."""

from __future__ import annotations

import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from seatsync.models.live import error_event
from seatsync.services.notifications import NotificationChannel
from seatsync.utils.dependencies import get_engine
from seatsync.utils.logger import logger

router = APIRouter(tags=["live"])


@router.websocket("/ws")
async def live_channel(websocket: WebSocket):
    engine = get_engine(websocket)
    await websocket.accept()
    channel = NotificationChannel(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                payload = json.loads(raw)
            except ValueError:
                await channel.send(error_event("invalid_json"))
                continue
            try:
                await engine.handle_message(channel, payload)
            except Exception as exc:
                logger.exception("Live channel command failed")
                await channel.send(error_event(str(exc) or "internal_error"))
    except WebSocketDisconnect as exc:
        logger.info("live.disconnect", extra={"code": exc.code})
    finally:
        engine.disconnect(channel)
