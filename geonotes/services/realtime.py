"""
Realtime Sync Channel.

Keeps the Note Store in step with the backend by subscribing to change
notifications for the notes table. Any insert, update or delete triggers a
full reload; notifications carry no row data.

When the feed drops the subscription, the channel resubscribes with
exponential backoff and then reloads once to pick up changes missed while
disconnected. ``release()`` (or leaving the ``async with`` block) closes the
subscription and stops any reconnect in progress.

Usage:
    async with RealtimeSyncChannel(feed, store) as channel:
        ...
"""

import asyncio
from dataclasses import dataclass

from geonotes.core.exceptions import PersistenceError
from geonotes.core.logging import get_logger, log_with_source
from geonotes.core.resilience import backoff_retrying
from geonotes.events.feed import ChangeFeed, Subscription
from geonotes.events.schemas import TableChanged
from geonotes.services.note_store import NoteStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReconnectPolicy:
    max_attempts: int = 6
    backoff_multiplier: float = 0.5
    backoff_max: float = 30.0


class RealtimeSyncChannel:
    """Subscription that turns change notifications into Note Store reloads."""

    def __init__(
        self,
        feed: ChangeFeed,
        store: NoteStore,
        table: str = "notes",
        reconnect: ReconnectPolicy | None = None,
    ) -> None:
        self._feed = feed
        self._store = store
        self._table = table
        self._reconnect = reconnect or ReconnectPolicy()
        self._subscription: Subscription | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._released = False

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def subscribe(self) -> None:
        """Start listening. Calling again while subscribed is a no-op.

        Raises:
            ConnectionError: If the feed cannot be reached
        """
        self._released = False
        if self.subscribed:
            return
        self._subscription = await self._feed.subscribe(
            self._table,
            self._on_change,
            on_disconnect=self._on_disconnect,
        )
        log_with_source(logger, "events", "info", "Realtime channel subscribed", table=self._table)

    async def release(self) -> None:
        """Unsubscribe and cancel any reconnect in progress."""
        self._released = True

        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        self._reconnect_task = None

        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
            log_with_source(logger, "events", "info", "Realtime channel released", table=self._table)

    async def __aenter__(self) -> "RealtimeSyncChannel":
        await self.subscribe()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.release()

    async def wait_reconnected(self) -> None:
        """Wait for an in-progress reconnect to finish (no-op if none)."""
        if self._reconnect_task is not None:
            await asyncio.shield(self._reconnect_task)

    async def _on_change(self, event: TableChanged) -> None:
        log_with_source(
            logger, "events", "debug", "Change received",
            table=event.table, event_type=event.event_type, event_id=event.event_id,
        )
        await self._reload()

    async def _on_disconnect(self) -> None:
        self._subscription = None
        if self._released:
            return
        log_with_source(logger, "events", "warning", "Realtime channel disconnected", table=self._table)
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._resubscribe())

    async def _resubscribe(self) -> None:
        policy = self._reconnect
        try:
            async for attempt in backoff_retrying(
                max_attempts=policy.max_attempts,
                multiplier=policy.backoff_multiplier,
                maximum=policy.backoff_max,
            ):
                with attempt:
                    await self.subscribe()
        except (ConnectionError, TimeoutError, OSError) as e:
            log_with_source(
                logger, "events", "error", "Realtime channel gave up reconnecting",
                table=self._table, attempts=policy.max_attempts, error=str(e),
            )
            return

        await self._reload()

    async def _reload(self) -> None:
        try:
            await self._store.load_all()
        except PersistenceError as e:
            log_with_source(
                logger, "events", "error", "Reload after change failed",
                table=self._table, error=e.message,
            )
