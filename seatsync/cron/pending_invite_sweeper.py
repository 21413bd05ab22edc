from __future__ import annotations

"""Cron job: delete stale pending invitations on every managed account.

Run every few minutes. Invitations for desired members and invitations younger
than the grace period (``INVITE_GRACE_PERIOD_MINUTES``, default 5) are kept.
Accounts are swept one at a time; one failing account does not stop the rest.
"""

import asyncio

from seatsync.models import AccountRecord
from seatsync.services.invites import InviteManager
from seatsync.services.upstream import UpstreamClient, UpstreamError
from seatsync.settings import EngineSettings
from seatsync.utils import account_store
from seatsync.utils.dependencies import get_supabase_async
from seatsync.utils.logger import configure_logging, logger


async def sweep_pending_invites(
    accounts: list[AccountRecord],
    invites: InviteManager,
    settings: EngineSettings,
) -> dict:
    totals = {"accounts": 0, "deleted": 0, "failed": 0, "errors": 0, "skipped": 0}
    for account in accounts:
        if not account.upstream_account_id:
            totals["skipped"] += 1
            continue
        if totals["accounts"]:
            await asyncio.sleep(settings.sweep_pause_seconds)
        totals["accounts"] += 1
        try:
            result = await invites.cleanup_pending_invites(
                account.upstream_account_id, account.access_token, account.desired_set
            )
        except UpstreamError as exc:
            totals["errors"] += 1
            logger.warning(f"Pending invite sweep failed for account {account.id}: {exc}")
            continue
        totals["deleted"] += len(result["deleted"])
        totals["failed"] += len(result["failed"])
    logger.info("cron.pending_invites", extra=totals)
    return totals


async def _run() -> None:
    configure_logging()
    settings = EngineSettings.from_env()
    async with UpstreamClient(settings) as client:
        invites = InviteManager(client, settings)
        async for supabase in get_supabase_async():
            accounts = await account_store.list_all_accounts(supabase)
            await sweep_pending_invites(accounts, invites, settings)


if __name__ == "__main__":
    asyncio.run(_run())
