"""Request-level checks shared by the account and invite routes."""

from __future__ import annotations

from fastapi import HTTPException, status

from seatsync.models import AccountRecord, ErrorKind
from seatsync.services.upstream import UpstreamError
from seatsync.utils import account_store

_UPSTREAM_STATUS = {
    ErrorKind.session_expired: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.invalid_account: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def upstream_http_exception(exc: UpstreamError) -> HTTPException:
    """Translate a classified upstream failure for the dashboard.

    401 and 422 keep their meaning; anything else is a bad gateway.
    """
    return HTTPException(
        status_code=_UPSTREAM_STATUS.get(exc.kind, status.HTTP_502_BAD_GATEWAY),
        detail={"error": exc.kind.value, "status_code": exc.status_code, "message": str(exc)},
    )


async def load_account_or_404(supabase, account_id: str, user_id: str) -> AccountRecord:
    account = await account_store.get_account(supabase, account_id, user_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="account_not_found")
    return account


def enforce_capacity(members: list[str], max_members: int) -> None:
    if len(members) > max_members:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "too_many_members",
                "max_members": max_members,
                "requested": len(members),
            },
        )
