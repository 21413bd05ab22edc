"""Pending-invitation lifecycle: send, list, delete and grace-period cleanup."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from seatsync.models import AccountRecord, PendingInvite
from seatsync.services.upstream import UpstreamClient, UpstreamError
from seatsync.settings import EngineSettings
from seatsync.utils.logger import logger
from seatsync.utils.utils import normalize_email

INVITE_ROLE = "standard-user"
INVITES_PAGE_SIZE = 100


def _invite_age_ok(invite: PendingInvite, cutoff: datetime) -> bool:
    """True when the invite is still inside its grace period."""
    if invite.created_time is None:
        return False
    created = invite.created_time
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created > cutoff


class InviteManager:
    def __init__(self, client: UpstreamClient, settings: EngineSettings | None = None):
        self.client = client
        self.settings = settings or client.settings

    async def send_invites(
        self,
        account_id: str,
        credential: str,
        emails: Iterable[str],
        resend: bool = True,
    ) -> dict[str, Any]:
        """Invite ``emails`` as standard users.

        Single attempt: the caller reports the exact failure to the operator
        and decides whether to persist anything.
        """
        addresses = [normalize_email(e) for e in emails if normalize_email(e)]
        data = await self.client.request(
            "POST",
            f"/accounts/{account_id}/invites",
            credential,
            account_id=account_id,
            json={"email_addresses": addresses, "role": INVITE_ROLE, "resend_emails": resend},
            retry=False,
        )
        logger.info(
            "invites.sent",
            extra={"upstream_account_id": account_id, "invited_count": len(addresses)},
        )
        return {"invited_count": len(addresses), "data": data}

    async def list_pending_invites(self, account_id: str, credential: str) -> dict[str, Any]:
        invites: list[PendingInvite] = []
        offset = 0
        total: int | None = None
        while True:
            data = await self.client.request(
                "GET",
                f"/accounts/{account_id}/invites",
                credential,
                account_id=account_id,
                params={"offset": offset, "limit": INVITES_PAGE_SIZE, "query": ""},
            )
            items = []
            if isinstance(data, dict):
                items = data.get("items") or data.get("invites") or []
                if isinstance(data.get("total"), int):
                    total = data["total"]
            elif isinstance(data, list):
                items = data
            invites.extend(PendingInvite.from_upstream(item) for item in items)
            offset += len(items)
            if len(items) < INVITES_PAGE_SIZE or (total is not None and offset >= total):
                break
        return {"invites": invites, "total": total if total is not None else len(invites)}

    async def delete_pending_invite(self, account_id: str, credential: str, email: str) -> None:
        await self.client.request(
            "DELETE",
            f"/accounts/{account_id}/invites",
            credential,
            account_id=account_id,
            json={"email_address": email},
        )

    async def cleanup_pending_invites(
        self,
        account_id: str,
        credential: str,
        desired: Iterable[str],
        grace_period_minutes: float | None = None,
        *,
        now: datetime | None = None,
    ) -> dict[str, list]:
        """Delete pending invites that are neither desired nor recent.

        Deletions run one at a time with a short pause; a failed deletion is
        recorded and the batch continues.
        """
        if grace_period_minutes is None:
            grace_period_minutes = self.settings.grace_period_minutes
        keep = {normalize_email(e) for e in desired}
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(minutes=grace_period_minutes)

        listing = await self.list_pending_invites(account_id, credential)
        stale = [
            invite
            for invite in listing["invites"]
            if invite.email_key
            and invite.email_key not in keep
            and not _invite_age_ok(invite, cutoff)
        ]

        deleted: list[str] = []
        failed: list[dict[str, str]] = []
        for index, invite in enumerate(stale):
            if index:
                await asyncio.sleep(self.settings.invite_delete_pause_seconds)
            try:
                await self.delete_pending_invite(account_id, credential, invite.email)
                deleted.append(invite.email)
            except UpstreamError as exc:
                logger.warning(f"Failed to delete pending invite {invite.email} on {account_id}: {exc}")
                failed.append({"email": invite.email, "error": str(exc)})

        if deleted or failed:
            logger.info(
                "invites.cleanup",
                extra={"upstream_account_id": account_id, "deleted": len(deleted), "failed": len(failed)},
            )
        return {"deleted": deleted, "failed": failed}

    async def send_invites_to_accounts(self, accounts: list[AccountRecord]) -> list[dict[str, Any]]:
        """Resend each account's desired set, one account at a time.

        A random gap separates consecutive sends; one account failing (even
        with an expired session) never stops the others.
        """
        results: list[dict[str, Any]] = []
        sent_any = False
        for account in accounts:
            entry: dict[str, Any] = {"account_id": account.id, "admin_email": account.admin_email}
            if not account.allowed_members:
                entry.update(success=False, skipped=True, error="no_allowed_members")
                results.append(entry)
                continue
            if not account.upstream_account_id:
                entry.update(success=False, error="upstream_account_id_missing")
                results.append(entry)
                continue
            if sent_any:
                await asyncio.sleep(self.settings.bulk_gap_seconds())
            sent_any = True
            try:
                sent = await self.send_invites(
                    account.upstream_account_id, account.access_token, account.allowed_members
                )
                entry.update(success=True, invited_count=sent["invited_count"])
            except UpstreamError as exc:
                entry.update(success=False, error=str(exc), error_kind=exc.kind.value)
            results.append(entry)
        return results
