"""
Change Feeds.

Transport for table change notifications between the persistence backend
and its subscribers.

    InMemoryChangeFeed - in-process fan-out, used for a single process and tests
    RedisChangeFeed    - Redis pub/sub through the FastStream broker

Subscribers receive ``TableChanged`` events for one table. A subscription
must be closed when no longer needed; a feed that loses its connection
notifies each subscriber through its ``on_disconnect`` callback and drops
the subscription, leaving resubscription policy to the subscriber.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from itertools import count

from faststream.redis import RedisBroker
from redis.exceptions import RedisError

from geonotes.core.logging import get_logger
from geonotes.events.schemas import TableChanged

logger = get_logger(__name__)

ChangeHandler = Callable[[TableChanged], Awaitable[None]]
DisconnectHandler = Callable[[], Awaitable[None]]


class Subscription(ABC):
    """Handle returned by ``ChangeFeed.subscribe``."""

    @property
    @abstractmethod
    def active(self) -> bool: ...

    @abstractmethod
    async def close(self) -> None: ...


class ChangeFeed(ABC):
    """Publish/subscribe transport for ``TableChanged`` events."""

    @abstractmethod
    async def publish(self, event: TableChanged) -> None: ...

    @abstractmethod
    async def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        on_disconnect: DisconnectHandler | None = None,
    ) -> Subscription:
        """Start delivering events for ``table`` to ``handler``.

        Raises:
            ConnectionError: If the feed is not reachable
        """

    async def close(self) -> None:
        """Release transport resources. Default: nothing to release."""


# =============================================================================
# In-process feed
# =============================================================================


class _MemorySubscription(Subscription):
    def __init__(
        self,
        feed: "InMemoryChangeFeed",
        key: int,
        table: str,
        handler: ChangeHandler,
        on_disconnect: DisconnectHandler | None,
    ) -> None:
        self._feed = feed
        self.key = key
        self.table = table
        self.handler = handler
        self.on_disconnect = on_disconnect

    @property
    def active(self) -> bool:
        return self.key in self._feed._subscriptions

    async def close(self) -> None:
        self._feed._subscriptions.pop(self.key, None)


class InMemoryChangeFeed(ChangeFeed):
    """Fan-out of change events to subscribers in the same process.

    Handlers run one at a time in subscription order. A failing handler is
    logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[int, _MemorySubscription] = {}
        self._keys = count(1)
        self.connected = True

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, event: TableChanged) -> None:
        if not self.connected:
            logger.warning(
                "Change feed disconnected, event dropped",
                extra={"table": event.table, "event_type": event.event_type},
            )
            return

        for subscription in list(self._subscriptions.values()):
            if subscription.table != event.table or not subscription.active:
                continue
            try:
                await subscription.handler(event)
            except Exception as e:
                logger.error(
                    "Change handler failed",
                    extra={"table": event.table, "event_id": event.event_id, "error": str(e)},
                )

    async def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        on_disconnect: DisconnectHandler | None = None,
    ) -> Subscription:
        if not self.connected:
            raise ConnectionError("Change feed is not connected")

        subscription = _MemorySubscription(self, next(self._keys), table, handler, on_disconnect)
        self._subscriptions[subscription.key] = subscription
        logger.debug("Subscribed to change feed", extra={"table": table})
        return subscription

    async def disconnect(self) -> None:
        """Simulate connection loss: drop every subscription and notify it."""
        self.connected = False
        dropped = list(self._subscriptions.values())
        self._subscriptions.clear()
        logger.warning("Change feed connection lost", extra={"subscribers": len(dropped)})
        for subscription in dropped:
            if subscription.on_disconnect is not None:
                await subscription.on_disconnect()

    def reconnect(self) -> None:
        self.connected = True


# =============================================================================
# Redis feed
# =============================================================================


class _RedisSubscription(Subscription):
    def __init__(self, subscriber) -> None:
        self._subscriber = subscriber
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def close(self) -> None:
        if self._active:
            self._active = False
            await self._subscriber.close()


class RedisChangeFeed(ChangeFeed):
    """Change events over a Redis pub/sub channel.

    All tables share one channel; subscribers filter on ``table``. The
    broker reconnects to Redis on its own, so ``on_disconnect`` is never
    called; a failure to start the subscriber raises ``ConnectionError``.
    """

    def __init__(self, broker: RedisBroker, channel: str) -> None:
        self._broker = broker
        self._channel = channel
        self._connected = False

    async def _ensure_connected(self) -> None:
        if not self._connected:
            await self._broker.connect()
            self._connected = True

    async def publish(self, event: TableChanged) -> None:
        await self._ensure_connected()
        await self._broker.publish(event.model_dump(), channel=self._channel)
        logger.debug(
            "Change event published",
            extra={"channel": self._channel, "table": event.table, "event_type": event.event_type},
        )

    async def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        on_disconnect: DisconnectHandler | None = None,
    ) -> Subscription:
        await self._ensure_connected()

        subscriber = self._broker.subscriber(self._channel)

        async def _dispatch(data: dict) -> None:
            event = TableChanged(**data)
            if event.table == table:
                await handler(event)

        subscriber(_dispatch)
        self._broker.setup_subscriber(subscriber)
        try:
            await subscriber.start()
        except (OSError, RedisError) as e:
            raise ConnectionError(f"Could not subscribe to {self._channel}") from e

        logger.debug("Subscribed to change feed", extra={"channel": self._channel, "table": table})
        return _RedisSubscription(subscriber)

    async def close(self) -> None:
        if self._connected:
            await self._broker.close()
            self._connected = False
