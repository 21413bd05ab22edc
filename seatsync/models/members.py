"""Transient views of upstream seat state (never persisted)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from seatsync.models.status import ErrorKind

ADMIN_MEMBER_ID = "admin"


class Member(BaseModel):
    """One seat holder returned by ``GET /accounts/{id}/users``."""

    id: str
    email: Optional[str] = None
    role: Optional[str] = None
    created_time: Optional[datetime] = None
    is_admin: bool = False

    @classmethod
    def from_upstream(cls, row: dict[str, Any]) -> "Member":
        return cls(
            id=str(row.get("id")),
            email=row.get("email"),
            role=row.get("role"),
            created_time=row.get("created_time") or row.get("created_at"),
        )

    @classmethod
    def admin(cls, email: str) -> "Member":
        return cls(id=ADMIN_MEMBER_ID, email=email, role="account-owner", is_admin=True)

    @property
    def email_key(self) -> str:
        return (self.email or "").strip().lower()

    def created_sort_key(self) -> float:
        """Epoch seconds, 0 when the platform omitted the timestamp."""
        if self.created_time is None:
            return 0.0
        created = self.created_time
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return created.timestamp()


class PendingInvite(BaseModel):
    """An outstanding invitation that has not turned into a member yet."""

    email: str
    role: Optional[str] = None
    created_time: Optional[datetime] = None

    @classmethod
    def from_upstream(cls, row: dict[str, Any]) -> "PendingInvite":
        return cls(
            email=row.get("email_address") or row.get("email") or "",
            role=row.get("role"),
            created_time=row.get("created_time") or row.get("created_at") or row.get("invited_at"),
        )

    @property
    def email_key(self) -> str:
        return self.email.strip().lower()


class ReconciliationOutcome(BaseModel):
    """Result of one reconciliation pass for one account."""

    account_id: str
    success: bool
    members: List[Member] = Field(default_factory=list)
    members_count: int = 0
    allowed_members: List[str] = Field(default_factory=list)
    unauthorized_deleted: int = 0
    overflow_deleted: int = 0
    failed_deletions: int = 0
    pending_cleaned: int = Field(0, description="Invites removed by the last completed background cleanup")
    next_refresh_seconds: Optional[float] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, account_id: str, kind: ErrorKind, message: str, **extra: Any) -> "ReconciliationOutcome":
        return cls(account_id=account_id, success=False, error_kind=kind, error=message, **extra)

    def payload(self) -> dict[str, Any]:
        """JSON-safe dict for the live channel and HTTP responses."""
        return self.model_dump(mode="json")
