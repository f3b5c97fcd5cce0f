"""
Event Broker.

FastStream RedisBroker setup with lazy initialization. Only used when
realtime.yaml selects the ``redis`` change feed.

Usage:
    from geonotes.events.broker import get_event_broker

    broker = get_event_broker()
"""

from faststream.redis import RedisBroker

from geonotes.core.logging import get_logger

logger = get_logger(__name__)

_broker: RedisBroker | None = None


def create_event_broker() -> RedisBroker:
    """Create a new RedisBroker using the project's Redis URL.

    Returns:
        Configured RedisBroker instance
    """
    from geonotes.core.config import get_redis_url

    broker = RedisBroker(get_redis_url())
    logger.info("Event broker created")
    return broker


def get_event_broker() -> RedisBroker:
    """Get the shared event broker (lazy initialization).

    Returns:
        Shared RedisBroker instance
    """
    global _broker
    if _broker is None:
        _broker = create_event_broker()
    return _broker

