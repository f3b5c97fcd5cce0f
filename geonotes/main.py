"""
GeoNotes Application Entry Point.

Composition root: builds every engine component from configuration and
owns their lifecycle.

Usage:
    from geonotes.main import create_app

    async with create_app() as app:
        app.pin.drop(Coordinates(latitude=24.58, longitude=73.71))
        app.pin.start_note()
        outcome = await app.pin.save("Great coffee shop, quiet patio in the evening.")
        results = app.spatial.nearby_for_pin(app.pin.snapshot())
"""

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from geonotes.core.concurrency import reset_semaphores
from geonotes.core.config import find_project_root, get_app_config, get_settings
from geonotes.core.database import create_tables, dispose_engine, get_session_factory
from geonotes.core.logging import get_logger
from geonotes.core.resilience import create_circuit_breaker
from geonotes.events.feed import ChangeFeed, InMemoryChangeFeed, RedisChangeFeed
from geonotes.events.publishers import TableChangePublisher
from geonotes.repositories.local_state import LocalStateRepository
from geonotes.services.classifier import ContentClassifier
from geonotes.services.geopin import GeoPinStateMachine
from geonotes.services.location_search import (
    UNKNOWN_LOCATION,
    GeocoderClient,
    LocationSearchClient,
)
from geonotes.services.map_view import InMemoryMarkerLayer, ViewportState
from geonotes.services.moderation import ModerationStrategy, create_moderation_gate
from geonotes.services.note_backend import NoteBackend
from geonotes.services.note_store import NoteStore
from geonotes.services.realtime import RealtimeSyncChannel, ReconnectPolicy
from geonotes.services.recent_searches import RecentSearches
from geonotes.services.spatial import SpatialQueryEngine

logger = get_logger(__name__)


@dataclass
class GeoNotesApp:
    """Wired engine components for one user session."""

    owner_id: str
    feed: ChangeFeed
    store: NoteStore
    channel: RealtimeSyncChannel | None
    gate: ModerationStrategy
    search: LocationSearchClient
    spatial: SpatialQueryEngine
    pin: GeoPinStateMachine
    markers: InMemoryMarkerLayer
    viewport: ViewportState

    async def describe_pin(self) -> str:
        """Reverse-geocoded label for the current pin."""
        snapshot = self.pin.snapshot()
        if snapshot.pin is None:
            return UNKNOWN_LOCATION
        coordinates = snapshot.pin.coordinates
        return await self.search.reverse_geocode(coordinates.latitude, coordinates.longitude)


def _create_feed() -> ChangeFeed:
    config = get_app_config().realtime
    if config.feed == "redis":
        from geonotes.events.broker import get_event_broker

        return RedisChangeFeed(get_event_broker(), config.channel)
    return InMemoryChangeFeed()


def _export_provider_key() -> None:
    """Make the classifier provider key visible to the model client."""
    api_key = get_settings().anthropic_api_key
    if api_key and not os.environ.get("ANTHROPIC_API_KEY"):
        os.environ["ANTHROPIC_API_KEY"] = api_key


@asynccontextmanager
async def create_app(
    owner_id: str | None = None,
    feed: ChangeFeed | None = None,
    classifier: ContentClassifier | None = None,
    geocoder: GeocoderClient | None = None,
) -> AsyncGenerator[GeoNotesApp, None]:
    """
    Build the application, subscribe the realtime channel and load notes.

    Args:
        owner_id: Identity for this session; application.yaml default if omitted
        feed: Change feed override; realtime.yaml selects one if omitted
        classifier: Classifier override for the moderation gate
        geocoder: Geocoder client override

    Yields:
        The wired GeoNotesApp; everything is released on exit
    """
    app_config = get_app_config()
    root = find_project_root()
    owner_id = owner_id or app_config.application.default_owner_id
    timeouts = app_config.application.timeouts

    _export_provider_key()
    await create_tables()

    feed = feed or _create_feed()
    realtime = app_config.realtime
    publisher = TableChangePublisher(feed, table=realtime.table)
    backend = NoteBackend(get_session_factory(), publisher, timeout=timeouts.persistence)
    store = NoteStore(backend, owner_id)

    channel = None
    if app_config.features.realtime_enabled:
        channel = RealtimeSyncChannel(
            feed,
            store,
            table=realtime.table,
            reconnect=ReconnectPolicy(
                max_attempts=realtime.reconnect.max_attempts,
                backoff_multiplier=realtime.reconnect.backoff_multiplier,
                backoff_max=realtime.reconnect.backoff_max,
            ),
        )

    geo = app_config.geocoder
    geocoder = geocoder or GeocoderClient(
        geo.base_url,
        timeout=timeouts.geocoder,
        user_agent=geo.user_agent,
        breaker=create_circuit_breaker(
            "geocoder",
            fail_max=geo.circuit_breaker_fail_max,
            timeout_duration=geo.circuit_breaker_timeout,
        ),
    )
    recents = RecentSearches(
        LocalStateRepository(root / geo.recent_searches.state_path),
        storage_key=geo.recent_searches.storage_key,
        max_stored=geo.recent_searches.max_stored,
        max_displayed=geo.recent_searches.max_displayed,
    )
    search = LocationSearchClient(
        geocoder,
        recents,
        debounce_seconds=geo.debounce_ms / 1000,
        suggestion_limit=geo.suggestion_limit,
        search_limit=geo.search_limit,
        recenter_zoom=geo.recenter_zoom,
    )

    gate = create_moderation_gate(classifier=classifier)
    markers = InMemoryMarkerLayer()
    app = GeoNotesApp(
        owner_id=owner_id,
        feed=feed,
        store=store,
        channel=channel,
        gate=gate,
        search=search,
        spatial=SpatialQueryEngine(
            store,
            default_radius_km=app_config.spatial.default_radius_km,
            circle_point_count=app_config.spatial.circle_point_count,
        ),
        pin=GeoPinStateMachine(gate, store, markers),
        markers=markers,
        viewport=ViewportState(),
    )

    try:
        if channel is not None:
            await channel.subscribe()
        await store.load_all()
        logger.info(
            "Application started",
            extra={"owner_id": owner_id, "notes": len(store), "realtime": channel is not None},
        )
        yield app
    finally:
        if channel is not None:
            await channel.release()
        await search.close()
        await feed.close()
        await dispose_engine()
        reset_semaphores()
        logger.info("Application stopped")
