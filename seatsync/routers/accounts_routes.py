"""Account command handlers: CRUD, desired members and reconciliation triggers.

Every route is scoped to the caller's own accounts. Mutations of the desired
set go through :func:`filter_desired_members` and a capacity check before they
are persisted, and an owner with an open live channel sees the effect on the
next reconciliation immediately.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from seatsync.models import (
    AccountCreateRequest,
    AccountListResponse,
    AccountRecord,
    AccountResponse,
    AccountStatsResponse,
    AllowedMembersUpdateRequest,
    AuditAction,
    AuditStatus,
    AuthContext,
    MessageResponse,
    SessionStatus,
)
from seatsync.services.engine import SeatEngine
from seatsync.services.upstream import UpstreamError
from seatsync.utils import account_store
from seatsync.utils.audit import log_audit_event
from seatsync.utils.auth import require_auth
from seatsync.utils.dependencies import get_engine, get_supabase_async
from seatsync.utils.guards import enforce_capacity, load_account_or_404, upstream_http_exception
from seatsync.utils.logger import logger
from seatsync.utils.utils import filter_desired_members

router = APIRouter(prefix="/v1/accounts", tags=["accounts"])


# ---------------------------------------------------------------------------
# Collection routes (static paths first so they win over /{account_id})
# ---------------------------------------------------------------------------


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    payload: AccountCreateRequest,
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    """Register an upstream team account to manage."""
    max_members = payload.max_members or engine.settings.default_max_members
    members = filter_desired_members(payload.allowed_members, payload.admin_email)
    enforce_capacity(members, max_members)

    account = await account_store.insert_account(
        supabase,
        user_id=auth.user_id,
        name=payload.name,
        admin_email=payload.admin_email,
        upstream_account_id=payload.upstream_account_id,
        access_token=payload.access_token,
        allowed_members=members,
        max_members=max_members,
    )
    if account is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="account_already_exists")

    await log_audit_event(
        supabase,
        action=AuditAction.account_create,
        user_id=auth.user_id,
        resource_id=account.id,
        metadata={"admin_email": account.admin_email, "allowed_members": len(members)},
    )
    engine.notify_account_changed(auth.user_id, account.id)
    return AccountResponse.from_record(account)


@router.get("", response_model=AccountListResponse)
async def list_accounts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, description="Substring of the admin email"),
    sort_by: str = Query("created_at"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
):
    accounts, total = await account_store.search_accounts(
        supabase,
        auth.user_id,
        page=page,
        limit=limit,
        search=search,
        sort_by=sort_by,
        descending=order == "desc",
        created_from=created_from,
        created_to=created_to,
    )
    return AccountListResponse(
        accounts=[AccountResponse.from_record(a) for a in accounts],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/stats", response_model=AccountStatsResponse)
async def account_stats(
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
):
    """Account counts per session status."""
    accounts = await account_store.list_user_accounts(supabase, auth.user_id)
    by_status = {s.value: 0 for s in SessionStatus}
    for account in accounts:
        by_status[account.session_status.value] += 1
    return AccountStatsResponse(total=len(accounts), by_status=by_status)


@router.post("/process")
async def process_accounts(
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    """Fetch a member snapshot of every account. Nothing is changed upstream."""
    accounts = await account_store.list_user_accounts(supabase, auth.user_id)
    if not accounts:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no_accounts")

    async def _snapshot(account: AccountRecord) -> dict:
        try:
            upstream_id = await engine.reconciler.resolve_upstream_id(account)
            members = await engine.client.fetch_members(upstream_id, account.access_token)
        except UpstreamError as exc:
            return {"account_id": account.id, "success": False, "error": str(exc), "error_kind": exc.kind.value}
        return {
            "account_id": account.id,
            "success": True,
            "members_count": len(members),
            "members": [m.model_dump(mode="json") for m in members],
        }

    logger.info(f"Processing {len(accounts)} accounts for user {auth.user_id}")
    results = await engine.run_sequentially(accounts, _snapshot)
    return {"message": f"Processed {len(accounts)} accounts", "results": results}


@router.post("/auto-cleanup-all")
async def auto_cleanup_all(
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    """One reconciliation pass per account, one account at a time."""
    accounts = await account_store.list_user_accounts(supabase, auth.user_id)

    async def _pass(account: AccountRecord) -> dict:
        outcome = await engine.reconcile(account)
        await engine.publish(auth.user_id, outcome)
        return outcome.payload()

    results = await engine.run_sequentially(accounts, _pass)
    succeeded = sum(1 for r in results if r["success"])
    await log_audit_event(
        supabase,
        action=AuditAction.account_cleanup,
        user_id=auth.user_id,
        metadata={"accounts": len(results), "succeeded": succeeded},
    )
    return {"total": len(results), "succeeded": succeeded, "results": results}


# ---------------------------------------------------------------------------
# Single-account routes
# ---------------------------------------------------------------------------


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: str = Path(..., description="Account ID"),
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
):
    account = await load_account_or_404(supabase, account_id, auth.user_id)
    return AccountResponse.from_record(account)


@router.delete("/{account_id}", response_model=MessageResponse)
async def delete_account(
    account_id: str = Path(..., description="Account ID"),
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    """Delete the account and stop any live refresh for it."""
    deleted = await account_store.delete_account(supabase, account_id, auth.user_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="account_not_found")
    engine.forget_account(account_id)
    await log_audit_event(
        supabase,
        action=AuditAction.account_delete,
        user_id=auth.user_id,
        resource_id=account_id,
    )
    return MessageResponse(message="Account deleted")


@router.put("/{account_id}/allowed-members", response_model=AccountResponse)
async def update_allowed_members(
    payload: AllowedMembersUpdateRequest,
    account_id: str = Path(..., description="Account ID"),
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    """Replace the desired member set."""
    account = await load_account_or_404(supabase, account_id, auth.user_id)
    members = filter_desired_members(payload.allowed_members, account.admin_email)
    enforce_capacity(members, account.max_members)

    await account_store.save_allowed_members(supabase, account.id, members)
    account.allowed_members = members

    await log_audit_event(
        supabase,
        action=AuditAction.members_update,
        user_id=auth.user_id,
        resource_id=account.id,
        metadata={"allowed_members": len(members)},
    )
    engine.notify_account_changed(auth.user_id, account.id)
    return AccountResponse.from_record(account)


@router.post("/{account_id}/auto-cleanup")
async def auto_cleanup(
    account_id: str = Path(..., description="Account ID"),
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    """Run one reconciliation pass now and return its outcome."""
    account = await load_account_or_404(supabase, account_id, auth.user_id)
    outcome = await engine.reconcile(account)
    await engine.publish(auth.user_id, outcome)
    await log_audit_event(
        supabase,
        action=AuditAction.account_cleanup,
        user_id=auth.user_id,
        status=AuditStatus.success if outcome.success else AuditStatus.failure,
        resource_id=account.id,
        metadata={
            "unauthorized_deleted": outcome.unauthorized_deleted,
            "overflow_deleted": outcome.overflow_deleted,
        },
    )
    return outcome.payload()


@router.delete("/{account_id}/members/{member_id}")
async def delete_member(
    account_id: str = Path(..., description="Account ID"),
    member_id: str = Path(..., description="Upstream user id of the member"),
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    """Remove a member and drop their email from the desired set."""
    account = await load_account_or_404(supabase, account_id, auth.user_id)
    try:
        result = await engine.reconciler.delete_member(account, member_id)
    except UpstreamError as exc:
        await log_audit_event(
            supabase,
            action=AuditAction.member_delete,
            user_id=auth.user_id,
            status=AuditStatus.failure,
            resource_id=account.id,
            metadata={"member_id": member_id, "error": exc.kind.value},
        )
        raise upstream_http_exception(exc)

    await log_audit_event(
        supabase,
        action=AuditAction.member_delete,
        user_id=auth.user_id,
        resource_id=account.id,
        metadata=result,
    )
    return {"message": "Member deleted", **result, "allowed_members": account.allowed_members}
