"""Invitation commands for managed accounts."""

from fastapi import APIRouter, Depends, HTTPException, Path, Request, status

from seatsync.main import limiter
from seatsync.models import AccountRecord, AuditAction, AuditStatus, AuthContext, SendInvitesRequest
from seatsync.services.engine import SeatEngine
from seatsync.services.upstream import UpstreamError
from seatsync.utils import account_store
from seatsync.utils.audit import log_audit_event
from seatsync.utils.auth import require_auth
from seatsync.utils.dependencies import get_engine, get_supabase_async
from seatsync.utils.guards import enforce_capacity, load_account_or_404, upstream_http_exception
from seatsync.utils.logger import logger
from seatsync.utils.utils import filter_desired_members

router = APIRouter(prefix="/v1/accounts", tags=["invites"])


def _pending_payload(listing: dict) -> dict:
    return {
        "invites": [invite.model_dump(mode="json") for invite in listing["invites"]],
        "total": listing["total"],
    }


@router.post("/send-invites-all")
@limiter.limit("5/minute")
async def send_invites_all(
    request: Request,
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    """Resend every account's desired set. Accounts are handled one by one."""
    accounts = await account_store.list_user_accounts(supabase, auth.user_id)
    if not accounts:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no_accounts")
    for account in accounts:
        if account.allowed_members and not account.upstream_account_id:
            try:
                await engine.reconciler.resolve_upstream_id(account)
            except UpstreamError as exc:
                logger.warning(f"Could not resolve upstream id for account {account.id}: {exc}")

    results = await engine.invites.send_invites_to_accounts(accounts)
    succeeded = sum(1 for r in results if r["success"])
    await log_audit_event(
        supabase,
        action=AuditAction.invite_send,
        user_id=auth.user_id,
        metadata={"accounts": len(results), "succeeded": succeeded},
    )
    return {
        "message": f"Invites sent to {succeeded}/{len(results)} accounts",
        "total": len(results),
        "total_invited": sum(r.get("invited_count", 0) for r in results),
        "results": results,
    }


@router.post("/cleanup-all-pending-invites")
@limiter.limit("5/minute")
async def cleanup_all_pending_invites(
    request: Request,
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    accounts = await account_store.list_user_accounts(supabase, auth.user_id)

    async def _cleanup(account: AccountRecord) -> dict:
        try:
            upstream_id = await engine.reconciler.resolve_upstream_id(account)
            result = await engine.invites.cleanup_pending_invites(
                upstream_id, account.access_token, account.desired_set
            )
        except UpstreamError as exc:
            return {"account_id": account.id, "success": False, "error": str(exc), "error_kind": exc.kind.value}
        return {"account_id": account.id, "success": True, **result}

    results = await engine.run_sequentially(accounts, _cleanup, pause=engine.settings.sweep_pause_seconds)
    await log_audit_event(
        supabase,
        action=AuditAction.invite_cleanup,
        user_id=auth.user_id,
        metadata={"accounts": len(results), "deleted": sum(len(r.get("deleted", [])) for r in results)},
    )
    return {"total": len(results), "results": results}


@router.post("/{account_id}/send-invites")
async def send_invites(
    payload: SendInvitesRequest,
    account_id: str = Path(..., description="Account ID"),
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    """Invite ``emails`` (or resend the whole desired set when empty).

    New addresses join the desired set only after the platform accepted the
    invitation; a failed delivery leaves the stored set untouched.
    """
    account = await load_account_or_404(supabase, account_id, auth.user_id)

    if payload.emails:
        requested = filter_desired_members(payload.emails, account.admin_email)
        if not requested:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no_valid_emails")

        # An address may only be desired on one of the owner's accounts.
        owned = await account_store.list_user_accounts(supabase, auth.user_id)
        taken: dict[str, str] = {}
        for other in owned:
            for email in other.desired_set:
                taken.setdefault(email, other.id)
        duplicates = [
            {"email": email, "account_id": taken[email]} for email in requested if email in taken
        ]
        if duplicates:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "duplicate_members", "duplicates": duplicates},
            )
        members = account.allowed_members + requested
        enforce_capacity(members, account.max_members)
    else:
        requested = list(account.allowed_members)
        if not requested:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no_allowed_members")
        members = requested

    try:
        upstream_id = await engine.reconciler.resolve_upstream_id(account)
        sent = await engine.invites.send_invites(upstream_id, account.access_token, requested)
    except UpstreamError as exc:
        await log_audit_event(
            supabase,
            action=AuditAction.invite_send,
            user_id=auth.user_id,
            status=AuditStatus.failure,
            resource_id=account.id,
            metadata={"emails": requested, "error": exc.kind.value},
        )
        raise upstream_http_exception(exc)

    if members != account.allowed_members:
        await account_store.save_allowed_members(supabase, account.id, members)
        account.allowed_members = members

    await log_audit_event(
        supabase,
        action=AuditAction.invite_send,
        user_id=auth.user_id,
        resource_id=account.id,
        metadata={"emails": requested},
    )
    engine.notify_account_changed(auth.user_id, account.id)
    return {
        "message": f"Invited {sent['invited_count']} members",
        "invited_count": sent["invited_count"],
        "allowed_members": account.allowed_members,
    }


@router.get("/{account_id}/pending-invites")
async def pending_invites(
    account_id: str = Path(..., description="Account ID"),
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    account = await load_account_or_404(supabase, account_id, auth.user_id)
    try:
        upstream_id = await engine.reconciler.resolve_upstream_id(account)
        listing = await engine.invites.list_pending_invites(upstream_id, account.access_token)
    except UpstreamError as exc:
        raise upstream_http_exception(exc)
    return _pending_payload(listing)


@router.post("/{account_id}/cleanup-pending-invites")
async def cleanup_pending_invites(
    account_id: str = Path(..., description="Account ID"),
    auth: AuthContext = Depends(require_auth()),
    supabase=Depends(get_supabase_async),
    engine: SeatEngine = Depends(get_engine),
):
    """Delete stale invitations that are not in the desired set."""
    account = await load_account_or_404(supabase, account_id, auth.user_id)
    try:
        upstream_id = await engine.reconciler.resolve_upstream_id(account)
        result = await engine.invites.cleanup_pending_invites(
            upstream_id, account.access_token, account.desired_set
        )
    except UpstreamError as exc:
        raise upstream_http_exception(exc)

    await log_audit_event(
        supabase,
        action=AuditAction.invite_cleanup,
        user_id=auth.user_id,
        resource_id=account.id,
        metadata={"deleted": len(result["deleted"]), "failed": len(result["failed"])},
    )
    return result
