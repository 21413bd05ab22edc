"""Top-level owner of the reconciliation machinery for one app instance.

The engine wires the upstream client, invite manager, reconciler and scheduler
together and speaks the live-channel protocol. There is exactly one engine per
FastAPI app; nothing here is module-global.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Iterable, TypeVar

import httpx
from fastapi import HTTPException
from pydantic import ValidationError

from seatsync.models import AccountRecord, ReconciliationOutcome
from seatsync.models.live import (
    LiveCommand,
    account_error_event,
    account_update_event,
    error_event,
    subscribed_event,
    unsubscribed_event,
)
from seatsync.services.invites import InviteManager
from seatsync.services.notifications import NotificationChannel
from seatsync.services.reconciler import Reconciler
from seatsync.services.scheduler import Scheduler, SubscriberRegistry
from seatsync.services.upstream import UpstreamClient
from seatsync.settings import EngineSettings
from seatsync.utils import account_store
from seatsync.utils.auth import decode_user_token
from seatsync.utils.logger import logger

T = TypeVar("T")
R = TypeVar("R")


class SeatEngine:
    def __init__(
        self,
        supabase: Any,
        settings: EngineSettings | None = None,
        *,
        client: UpstreamClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.supabase = supabase
        self.settings = settings or EngineSettings.from_env()
        self.client = client or UpstreamClient(self.settings, transport=transport)
        self.invites = InviteManager(self.client, self.settings)
        self.reconciler = Reconciler(self.client, self.invites, supabase, self.settings)
        self.registry = SubscriberRegistry()
        self.scheduler = Scheduler(self.registry, self._run_scheduled, self.settings)
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Live channel protocol
    # ------------------------------------------------------------------

    async def handle_message(self, channel: NotificationChannel, payload: Any) -> None:
        """Dispatch one decoded inbound frame."""
        try:
            command = LiveCommand.model_validate(payload)
        except ValidationError:
            await channel.send(error_event("invalid_message"))
            return

        try:
            user_id = decode_user_token(command.token)
        except HTTPException as exc:
            await channel.send(error_event(str(exc.detail)))
            return

        if command.type == "subscribe":
            await self.subscribe(user_id, channel)
        elif command.type == "unsubscribe":
            await self.unsubscribe(user_id, channel)
        else:
            await self.refresh(user_id, channel)

    async def subscribe(self, user_id: str, channel: NotificationChannel) -> list[float]:
        """Attach ``channel`` to ``user_id`` and start refreshing their accounts.

        A second subscribe replaces the first: old timers are cancelled and the
        staggering starts over.
        """
        self.scheduler.cancel_subscriber(user_id)
        self.registry.channels[user_id] = channel
        accounts = await account_store.list_user_accounts(self.supabase, user_id)
        await channel.send(subscribed_event(len(accounts), self.settings.refresh_interval_seconds))
        return self.scheduler.track(user_id, [account.id for account in accounts])

    async def unsubscribe(self, user_id: str, channel: NotificationChannel) -> None:
        stopped = self.scheduler.cancel_subscriber(user_id)
        logger.info("live.unsubscribe", extra={"subscriber": user_id, "accounts": stopped})
        await channel.send(unsubscribed_event())

    async def refresh(self, user_id: str, channel: NotificationChannel) -> None:
        """Kick off an immediate pass over every tracked account."""
        if not self.registry.accounts_by_subscriber.get(user_id):
            await channel.send(error_event("not_subscribed"))
            return
        self._spawn(self.scheduler.refresh_all(user_id))

    def disconnect(self, channel: NotificationChannel) -> None:
        channel.mark_closed()
        for subscriber, current in list(self.registry.channels.items()):
            if current is channel:
                self.scheduler.cancel_subscriber(subscriber)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def _run_scheduled(self, subscriber: str, account_id: str) -> None:
        account = await account_store.get_account(self.supabase, account_id)
        if account is None:
            logger.info(f"Account {account_id} no longer exists; dropping its timer")
            self.forget_account(account_id)
            return
        outcome = await self.reconciler.reconcile_account(account)
        await self.publish(subscriber, outcome)

    async def publish(self, subscriber: str, outcome: ReconciliationOutcome) -> bool:
        """Push an outcome to the subscriber, unless the account stopped being tracked."""
        if not self.scheduler.is_tracked(outcome.account_id):
            logger.debug(f"Discarding outcome for untracked account {outcome.account_id}")
            return False
        channel = self.registry.channels.get(subscriber)
        if channel is None or not channel.is_open:
            return False
        if outcome.success:
            event = account_update_event(outcome.account_id, outcome.payload())
        else:
            event = account_error_event(outcome.account_id, outcome.error or "reconciliation_failed")
        return await channel.send(event)

    async def reconcile(self, account: AccountRecord) -> ReconciliationOutcome:
        """One pass outside the timers; waits for any pass already running on the account."""
        async with self.scheduler.exclusive(account.id):
            return await self.reconciler.reconcile_account(account)

    # ------------------------------------------------------------------
    # Hooks for the command handlers
    # ------------------------------------------------------------------

    def notify_account_changed(self, user_id: str, account_id: str) -> bool:
        """Reconcile ``account_id`` right away if its owner is watching."""
        if not self.registry.channel_open(user_id):
            return False
        self.scheduler.arm(user_id, account_id, 0)
        return True

    def forget_account(self, account_id: str) -> None:
        self.scheduler.cancel(account_id)
        self.reconciler.forget(account_id)

    async def run_sequentially(
        self,
        items: Iterable[T],
        action: Callable[[T], Awaitable[R]],
        pause: float | None = None,
    ) -> list[R]:
        """Apply ``action`` to each item in turn.

        Without an explicit ``pause`` the random bulk gap separates items.
        """
        results: list[R] = []
        for index, item in enumerate(items):
            if index:
                await asyncio.sleep(self.settings.bulk_gap_seconds() if pause is None else pause)
            results.append(await action(item))
        return results

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def close(self) -> None:
        self.scheduler.shutdown()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.reconciler.drain()
        await self.client.close()
