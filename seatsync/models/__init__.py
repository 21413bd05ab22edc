from __future__ import annotations

"""Unified models namespace – API bodies, row models and transient engine types.

Call-sites can simply::

    from seatsync.models import AccountRecord, SessionStatus, ReconciliationOutcome
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

from seatsync.models.status import ErrorKind, SessionStatus
from seatsync.models.accounts import (
    DEFAULT_MAX_MEMBERS,
    AccountCreateRequest,
    AccountListResponse,
    AccountRecord,
    AccountResponse,
    AccountStatsResponse,
    AllowedMembersUpdateRequest,
    SendInvitesRequest,
)
from seatsync.models.members import ADMIN_MEMBER_ID, Member, PendingInvite, ReconciliationOutcome

# ---------------------------------------------------------------------------
# Authentication Models
# ---------------------------------------------------------------------------

@dataclass
class AuthContext:
    """Caller identity from a verified dashboard session token."""
    user_id: str
    token: str | None = None

# ---------------------------------------------------------------------------
# Audit enums
# ---------------------------------------------------------------------------

class AuditAction(str, Enum):
    """Standardized audit action types."""
    account_create = "account.create"
    account_delete = "account.delete"
    members_update = "account.members_update"
    member_delete = "account.member_delete"
    account_cleanup = "account.cleanup"
    invite_send = "invite.send"
    invite_cleanup = "invite.cleanup"

class AuditStatus(str, Enum):
    """Status of audited operations."""
    success = "success"
    failure = "failure"

# ---------------------------------------------------------------------------
# Generic responses
# ---------------------------------------------------------------------------

class MessageResponse(BaseModel):
    message: str = Field(..., examples=["OK"])


__all__ = [
    "ADMIN_MEMBER_ID",
    "DEFAULT_MAX_MEMBERS",
    "AccountCreateRequest",
    "AccountListResponse",
    "AccountRecord",
    "AccountResponse",
    "AccountStatsResponse",
    "AllowedMembersUpdateRequest",
    "AuditAction",
    "AuditStatus",
    "AuthContext",
    "ErrorKind",
    "Member",
    "MessageResponse",
    "PendingInvite",
    "ReconciliationOutcome",
    "SendInvitesRequest",
    "SessionStatus",
]
