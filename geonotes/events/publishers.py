"""
Event Publishers.

Wraps the change feed's publish() with the table name and event schema.

Publishers check the events_publish_enabled feature flag before publishing.
When disabled, events are silently skipped (no error, no log noise).

Usage:
    from geonotes.events.publishers import TableChangePublisher

    publisher = TableChangePublisher(feed, table="notes")
    await publisher.row_inserted()
"""

from geonotes.core.logging import get_logger
from geonotes.events.feed import ChangeFeed
from geonotes.events.schemas import ChangeType, TableChanged

logger = get_logger(__name__)


class TableChangePublisher:
    """Publishes row-level change notifications for one table."""

    def __init__(
        self,
        feed: ChangeFeed,
        table: str,
        source: str = "note-backend",
        enabled: bool | None = None,
    ) -> None:
        self._feed = feed
        self._table = table
        self._source = source
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        if self._enabled is None:
            from geonotes.core.config import get_app_config

            self._enabled = get_app_config().features.events_publish_enabled
        return self._enabled

    async def row_inserted(self) -> None:
        await self._publish("INSERT")

    async def row_updated(self) -> None:
        await self._publish("UPDATE")

    async def row_deleted(self) -> None:
        await self._publish("DELETE")

    async def _publish(self, change: ChangeType) -> None:
        """Publish an event if the feature flag is enabled.

        A publish failure is logged and swallowed: the row change is already
        committed, and subscribers reconcile on their next full reload.
        """
        if not self.enabled:
            return

        event = TableChanged(event_type=change, table=self._table, source=self._source)
        try:
            await self._feed.publish(event)
        except (ConnectionError, OSError) as e:
            logger.warning(
                "Change event not published",
                extra={"table": self._table, "event_type": change, "error": str(e)},
            )
            return

        logger.debug(
            "Event published",
            extra={"table": self._table, "event_type": change, "event_id": event.event_id},
        )
