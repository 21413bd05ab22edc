"""Drive one account's actual membership towards its desired set."""

from __future__ import annotations

import asyncio
from typing import Any

from seatsync.models import AccountRecord, ErrorKind, Member, ReconciliationOutcome, SessionStatus
from seatsync.services.invites import InviteManager
from seatsync.services.upstream import UpstreamClient, UpstreamError
from seatsync.settings import EngineSettings
from seatsync.utils import account_store
from seatsync.utils.logger import logger


def partition_members(members: list[Member], desired: set[str], admin_email: str) -> tuple[list[Member], list[Member]]:
    """Split non-admin members into ``(unauthorized, authorized)``.

    Members without an email cannot be matched against the desired set and are
    left alone.
    """
    admin = (admin_email or "").strip().lower()
    unauthorized: list[Member] = []
    authorized: list[Member] = []
    for member in members:
        key = member.email_key
        if not key or key == admin:
            continue
        (authorized if key in desired else unauthorized).append(member)
    return unauthorized, authorized


def select_overflow(authorized: list[Member], capacity: int) -> list[Member]:
    """Members to evict so that admin + authorized fits ``capacity``.

    The admin seat counts towards the total; the newest arrivals go first.
    """
    excess = 1 + len(authorized) - capacity
    if excess <= 0:
        return []
    newest_first = sorted(authorized, key=lambda m: m.created_sort_key(), reverse=True)
    return newest_first[:excess]


class Reconciler:
    """Runs reconciliation passes. Never raises out of :meth:`reconcile_account`."""

    def __init__(
        self,
        client: UpstreamClient,
        invites: InviteManager,
        supabase: Any,
        settings: EngineSettings | None = None,
    ):
        self.client = client
        self.invites = invites
        self.supabase = supabase
        self.settings = settings or client.settings
        self._cleanup_tasks: set[asyncio.Task] = set()
        self._last_cleanup: dict[str, int] = {}

    async def resolve_upstream_id(self, account: AccountRecord) -> str:
        """Return the account's upstream id, resolving and persisting it if unknown."""
        if account.upstream_account_id:
            return account.upstream_account_id
        resolved = await self.client.resolve_account_id(account.access_token)
        await account_store.set_upstream_account_id(self.supabase, account.id, resolved)
        account.upstream_account_id = resolved
        logger.info("account.upstream_id_resolved", extra={"account_id": account.id})
        return resolved

    async def _fail(self, account: AccountRecord, kind: ErrorKind, message: str) -> ReconciliationOutcome:
        try:
            await account_store.record_failure(self.supabase, account, kind, message)
        except Exception:
            logger.exception(f"Could not persist failure status for account {account.id}")
        return ReconciliationOutcome.failed(
            account.id,
            kind,
            message,
            allowed_members=list(account.allowed_members),
            pending_cleaned=self._last_cleanup.get(account.id, 0),
        )

    async def reconcile_account(self, account: AccountRecord) -> ReconciliationOutcome:
        try:
            return await self._reconcile(account)
        except UpstreamError as exc:
            logger.warning(f"Reconciliation failed for account {account.id}: {exc}")
            return await self._fail(account, exc.kind, str(exc))
        except Exception as exc:
            logger.exception(f"Unexpected error reconciling account {account.id}")
            return await self._fail(account, ErrorKind.unknown, str(exc) or exc.__class__.__name__)

    async def _reconcile(self, account: AccountRecord) -> ReconciliationOutcome:
        upstream_id = await self.resolve_upstream_id(account)
        members = await self.client.fetch_members(upstream_id, account.access_token)

        desired = account.desired_set
        unauthorized, authorized = partition_members(members, desired, account.admin_email)

        unauthorized_deleted = 0
        failed_deletions = 0
        for member in unauthorized:
            try:
                await self.client.delete_member(upstream_id, member.id, account.access_token)
                unauthorized_deleted += 1
            except UpstreamError as exc:
                failed_deletions += 1
                logger.warning(f"Could not remove unauthorized member {member.email} from {account.id}: {exc}")

        overflow = select_overflow(authorized, account.max_members)
        evicted: set[str] = set()
        for member in overflow:
            try:
                await self.client.delete_member(upstream_id, member.id, account.access_token)
                evicted.add(member.id)
            except UpstreamError as exc:
                failed_deletions += 1
                logger.warning(f"Could not evict overflow member {member.email} from {account.id}: {exc}")
        survivors = [m for m in authorized if m.id not in evicted]

        self._spawn_cleanup(account, upstream_id, desired)

        if account.session_status is not SessionStatus.active:
            await account_store.record_recovery(self.supabase, account)

        reported = [Member.admin(account.admin_email), *survivors]
        if unauthorized_deleted or evicted:
            logger.info(
                "account.reconciled",
                extra={
                    "account_id": account.id,
                    "unauthorized_deleted": unauthorized_deleted,
                    "overflow_deleted": len(evicted),
                },
            )
        return ReconciliationOutcome(
            account_id=account.id,
            success=True,
            members=reported,
            members_count=len(reported),
            allowed_members=list(account.allowed_members),
            unauthorized_deleted=unauthorized_deleted,
            overflow_deleted=len(evicted),
            failed_deletions=failed_deletions,
            pending_cleaned=self._last_cleanup.get(account.id, 0),
            next_refresh_seconds=self.settings.refresh_interval_seconds,
        )

    def _spawn_cleanup(self, account: AccountRecord, upstream_id: str, desired: set[str]) -> None:
        """Start the pending-invite cleanup without waiting for it."""
        task = asyncio.create_task(self._cleanup(account.id, upstream_id, account.access_token, desired))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _cleanup(self, account_id: str, upstream_id: str, credential: str, desired: set[str]) -> None:
        try:
            result = await self.invites.cleanup_pending_invites(upstream_id, credential, desired)
        except Exception as exc:
            logger.warning(f"Background invite cleanup failed for account {account_id}: {exc}")
            return
        self._last_cleanup[account_id] = len(result["deleted"])

    async def delete_member(self, account: AccountRecord, member_id: str) -> dict[str, Any]:
        """Remove one member on operator request.

        The member's email is dropped from the desired set first so the next
        pass does not treat the removal as drift. Looking the email up is
        best-effort; the upstream deletion is not.
        """
        upstream_id = await self.resolve_upstream_id(account)
        email: str | None = None
        try:
            members = await self.client.fetch_members(upstream_id, account.access_token)
            email = next((m.email_key for m in members if m.id == member_id), None)
        except UpstreamError as exc:
            logger.warning(f"Member lookup before deletion failed for {account.id}: {exc}")

        removed_from_desired = False
        if email and email in account.desired_set:
            remaining = [e for e in account.allowed_members if e.strip().lower() != email]
            await account_store.save_allowed_members(self.supabase, account.id, remaining)
            account.allowed_members = remaining
            removed_from_desired = True

        await self.client.delete_member(upstream_id, member_id, account.access_token)
        return {"member_id": member_id, "email": email, "removed_from_allowed": removed_from_desired}

    def forget(self, account_id: str) -> None:
        self._last_cleanup.pop(account_id, None)

    async def drain(self) -> None:
        """Wait for background cleanups still in flight (shutdown and tests)."""
        if self._cleanup_tasks:
            await asyncio.gather(*list(self._cleanup_tasks), return_exceptions=True)
