"""
Integration Test Fixtures.

Fixtures for integration tests - uses a real SQLite database and the real
services. Only the network collaborators (geocoder, classifier) are
replaced.
"""

from collections.abc import AsyncGenerator

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import geonotes.core.database as database_module
from geonotes.core.exceptions import ClassificationError
from geonotes.events.feed import InMemoryChangeFeed
from geonotes.events.publishers import TableChangePublisher
from geonotes.main import GeoNotesApp, create_app
from geonotes.services.classifier import ContentClassifier
from geonotes.services.location_search import GeocoderClient
from geonotes.services.note_backend import NoteBackend


class ScriptedClassifier(ContentClassifier):
    """Classifier that answers "not harmful" unless told to fail."""

    def __init__(self) -> None:
        self.available = True
        self.calls = 0

    async def is_harmful(self, text: str) -> bool:
        self.calls += 1
        if not self.available:
            raise ClassificationError("provider unavailable")
        return False


# =============================================================================
# Backend Fixtures
# =============================================================================


@pytest.fixture
def change_feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed()


@pytest.fixture
def note_backend(
    db_session_factory: async_sessionmaker[AsyncSession],
    change_feed: InMemoryChangeFeed,
) -> NoteBackend:
    """NoteBackend on the test database, publishing to ``change_feed``."""
    publisher = TableChangePublisher(change_feed, table="notes", enabled=True)
    return NoteBackend(db_session_factory, publisher)


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
async def app_engine(tmp_path, monkeypatch) -> AsyncGenerator[AsyncEngine, None]:
    """
    Point the application's lazy engine at a throwaway SQLite file.

    create_app() creates the tables and disposes the engine on exit.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'geonotes.db'}")
    monkeypatch.setattr(database_module, "_engine", engine)
    monkeypatch.setattr(database_module, "_async_session_factory", None)
    yield engine
    await engine.dispose()


@pytest.fixture
def classifier() -> ScriptedClassifier:
    return ScriptedClassifier()


@pytest.fixture
def geocoder() -> GeocoderClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/reverse":
            return httpx.Response(200, json={"display_name": "Lake Pichola, Udaipur"})
        return httpx.Response(200, json=[])

    return GeocoderClient("https://geocoder.test", transport=httpx.MockTransport(handler))


@pytest.fixture
async def app(app_engine, change_feed, classifier, geocoder) -> AsyncGenerator[GeoNotesApp, None]:
    """A fully wired application on the test database."""
    async with create_app(
        owner_id="owner-1",
        feed=change_feed,
        classifier=classifier,
        geocoder=geocoder,
    ) as application:
        yield application
