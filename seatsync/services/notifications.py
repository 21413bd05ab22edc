"""Outbound side of the ``/ws`` live channel."""

from __future__ import annotations

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from seatsync.models.live import LiveEvent
from seatsync.utils.logger import logger


class NotificationChannel:
    """Wraps one dashboard WebSocket. Sends never raise."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        if self._closed:
            return False
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        self._closed = True

    async def send(self, event: LiveEvent) -> bool:
        """Deliver ``event``; returns ``False`` when the peer is gone."""
        if not self.is_open:
            return False
        try:
            await self.websocket.send_json(event.to_wire())
            return True
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.info(f"Live channel closed while sending {event.type}: {exc!r}")
            self._closed = True
            return False
