"""Message shapes carried over the ``/ws`` live channel."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class LiveCommand(BaseModel):
    """Inbound frame from a dashboard tab."""

    type: Literal["subscribe", "unsubscribe", "refresh"]
    token: str = Field(..., min_length=1)


class LiveEvent(BaseModel):
    """Outbound frame. Unused fields are dropped from the wire."""

    type: Literal["subscribed", "unsubscribed", "account_update", "account_error", "error"]
    account_id: Optional[str] = None
    data: Optional[dict[str, Any]] = None
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


def subscribed_event(account_count: int, interval_seconds: float) -> LiveEvent:
    return LiveEvent(
        type="subscribed",
        message=f"Auto-refresh started for {account_count} accounts (every {interval_seconds:g}s)",
    )


def unsubscribed_event() -> LiveEvent:
    return LiveEvent(type="unsubscribed", message="Auto-refresh stopped")


def account_update_event(account_id: str, data: dict[str, Any]) -> LiveEvent:
    return LiveEvent(type="account_update", account_id=account_id, data=data)


def account_error_event(account_id: str, message: str) -> LiveEvent:
    return LiveEvent(type="account_error", account_id=account_id, message=message)


def error_event(message: str) -> LiveEvent:
    return LiveEvent(type="error", message=message)
