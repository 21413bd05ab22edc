"""Account row model and the request/response bodies of the account routes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from seatsync.models.status import SessionStatus

DEFAULT_MAX_MEMBERS = 7


class AccountRecord(BaseModel):
    """Row in ``accounts`` – one managed seat pool on the upstream platform."""

    id: str
    user_id: str
    name: Optional[str] = None
    admin_email: str
    upstream_account_id: Optional[str] = None
    access_token: str
    allowed_members: List[str] = Field(default_factory=list)
    max_members: int = DEFAULT_MAX_MEMBERS
    session_status: SessionStatus = SessionStatus.active
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    error_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # PostgREST hands back NULL for columns added after the row was written.
    @field_validator("allowed_members", mode="before")
    @classmethod
    def _null_members(cls, v: Any) -> Any:
        return v or []

    @field_validator("max_members", mode="before")
    @classmethod
    def _null_capacity(cls, v: Any) -> Any:
        return DEFAULT_MAX_MEMBERS if v is None else v

    @field_validator("error_count", mode="before")
    @classmethod
    def _null_counter(cls, v: Any) -> Any:
        return v or 0

    @field_validator("session_status", mode="before")
    @classmethod
    def _null_status(cls, v: Any) -> Any:
        return v or SessionStatus.active

    @property
    def desired_set(self) -> set[str]:
        return {email.strip().lower() for email in self.allowed_members if email}


class AccountResponse(BaseModel):
    """Account as returned to the dashboard – the credential never leaves."""

    id: str
    name: Optional[str] = None
    admin_email: str
    upstream_account_id: Optional[str] = None
    allowed_members: List[str] = Field(default_factory=list)
    max_members: int = DEFAULT_MAX_MEMBERS
    session_status: SessionStatus = SessionStatus.active
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    error_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: AccountRecord) -> "AccountResponse":
        return cls(**record.model_dump(exclude={"access_token", "user_id"}))


class AccountListResponse(BaseModel):
    accounts: List[AccountResponse]
    total: int
    page: int
    limit: int


class AccountStatsResponse(BaseModel):
    total: int
    by_status: dict[str, int]


class AccountCreateRequest(BaseModel):
    """Body for ``POST /v1/accounts``."""

    name: Optional[str] = Field(None, max_length=200)
    admin_email: str = Field(..., description="Owner seat on the upstream account")
    upstream_account_id: Optional[str] = Field(None, description="Resolved lazily when omitted")
    access_token: str = Field(..., min_length=1, description="Upstream bearer credential")
    allowed_members: List[str] = Field(default_factory=list)
    max_members: Optional[int] = Field(None, ge=1, le=100, description="Defaults to DEFAULT_MAX_MEMBERS")

    @field_validator("admin_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Invalid email format")
        return v

    @field_validator("access_token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("access_token must not be empty")
        return v


class AllowedMembersUpdateRequest(BaseModel):
    allowed_members: List[str] = Field(default_factory=list)


class SendInvitesRequest(BaseModel):
    """Empty ``emails`` means: resend to the whole desired set."""

    emails: List[str] = Field(default_factory=list)
