"""Account persistence on top of the generic Supabase helpers.

The reconciliation engine treats the store as a collaborator: it reads rows,
writes status bookkeeping and (only through the command handlers) the desired
member set. Every write here is a single-row PostgREST update.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from seatsync.models import AccountRecord, ErrorKind, SessionStatus
from seatsync.utils.database import delete_data, insert_data, query_data, query_many, query_one, update_data
from seatsync.utils.utils import generate_uuid

ACCOUNTS_TABLE = "accounts"
SORTABLE_COLUMNS = {"created_at", "updated_at", "admin_email", "name", "session_status"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def get_account(supabase, account_id: str, user_id: str | None = None) -> Optional[AccountRecord]:
    match = {"id": account_id}
    if user_id is not None:
        match["user_id"] = user_id
    row = await query_one(supabase, ACCOUNTS_TABLE, match=match)
    return AccountRecord.model_validate(row) if row else None


async def list_user_accounts(supabase, user_id: str) -> list[AccountRecord]:
    rows = await query_many(
        supabase,
        ACCOUNTS_TABLE,
        match={"user_id": user_id},
        order_by=("created_at", False),
    )
    return [AccountRecord.model_validate(row) for row in rows]


async def list_all_accounts(supabase) -> list[AccountRecord]:
    rows = await query_many(supabase, ACCOUNTS_TABLE, order_by=("created_at", False))
    return [AccountRecord.model_validate(row) for row in rows]


async def search_accounts(
    supabase,
    user_id: str,
    *,
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    sort_by: str = "created_at",
    descending: bool = True,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
) -> tuple[list[AccountRecord], int]:
    """Paginated listing for the dashboard table. Returns ``(rows, total)``."""
    filters: dict = {"user_id": user_id}
    if search:
        filters["admin_email"] = ("ilike", f"%{search.strip()}%")
    if created_from and created_to:
        filters["created_at"] = ("between", (created_from.isoformat(), created_to.isoformat()))
    elif created_from:
        filters["created_at"] = ("gte", created_from.isoformat())
    elif created_to:
        filters["created_at"] = ("lte", created_to.isoformat())

    if sort_by not in SORTABLE_COLUMNS:
        sort_by = "created_at"

    resp = await query_data(
        supabase,
        ACCOUNTS_TABLE,
        filters=filters,
        order_by=(sort_by, descending),
        limit=limit,
        offset=(page - 1) * limit,
        count="exact",
    )
    rows = getattr(resp, "data", None) or []
    total = getattr(resp, "count", None)
    accounts = [AccountRecord.model_validate(row) for row in rows]
    return accounts, total if total is not None else len(accounts)


async def insert_account(
    supabase,
    *,
    user_id: str,
    admin_email: str,
    access_token: str,
    name: str | None = None,
    upstream_account_id: str | None = None,
    allowed_members: list[str] | None = None,
    max_members: int,
) -> AccountRecord | None:
    """Insert a new account. Returns ``None`` when (user, admin_email) already exists."""
    now = _now_iso()
    row = {
        "id": generate_uuid(),
        "user_id": user_id,
        "name": name,
        "admin_email": admin_email,
        "upstream_account_id": upstream_account_id,
        "access_token": access_token,
        "allowed_members": allowed_members or [],
        "max_members": max_members,
        "session_status": SessionStatus.active.value,
        "error_count": 0,
        "created_at": now,
        "updated_at": now,
    }
    result = await insert_data(supabase, ACCOUNTS_TABLE, row)
    if result == "duplicate":
        return None
    return AccountRecord.model_validate(result[0] if result else row)


async def delete_account(supabase, account_id: str, user_id: str) -> bool:
    deleted = await delete_data(supabase, ACCOUNTS_TABLE, {"id": account_id, "user_id": user_id})
    return bool(deleted)


async def save_allowed_members(supabase, account_id: str, members: list[str]) -> None:
    await update_data(
        supabase,
        ACCOUNTS_TABLE,
        update_values={"allowed_members": members, "updated_at": _now_iso()},
        filters={"id": account_id},
        error_message="Failed to save allowed members",
    )


async def set_upstream_account_id(supabase, account_id: str, upstream_account_id: str) -> None:
    await update_data(
        supabase,
        ACCOUNTS_TABLE,
        update_values={"upstream_account_id": upstream_account_id, "updated_at": _now_iso()},
        filters={"id": account_id},
        error_message="Failed to save upstream account id",
    )


async def record_failure(supabase, account: AccountRecord, kind: ErrorKind, message: str) -> None:
    """Mark the account ``expired`` (401) or ``error`` and bump its error counter."""
    session_status = SessionStatus.expired if kind is ErrorKind.session_expired else SessionStatus.error
    now = _now_iso()
    await update_data(
        supabase,
        ACCOUNTS_TABLE,
        update_values={
            "session_status": session_status.value,
            "last_error": message,
            "last_error_at": now,
            "error_count": account.error_count + 1,
            "updated_at": now,
        },
        filters={"id": account.id},
        error_message="Failed to record account failure",
    )
    account.session_status = session_status
    account.error_count += 1
    account.last_error = message


async def record_recovery(supabase, account: AccountRecord) -> None:
    """Reset a previously failing account back to ``active``."""
    await update_data(
        supabase,
        ACCOUNTS_TABLE,
        update_values={
            "session_status": SessionStatus.active.value,
            "last_error": None,
            "error_count": 0,
            "updated_at": _now_iso(),
        },
        filters={"id": account.id},
        error_message="Failed to reset account status",
    )
    account.session_status = SessionStatus.active
    account.error_count = 0
    account.last_error = None
