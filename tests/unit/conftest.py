"""
Unit Test Fixtures.

Fixtures for unit tests - all external dependencies are replaced.
Unit tests should be fast and isolated, never touching real databases,
geocoders or classifiers.
"""

import asyncio
from collections.abc import Callable
from datetime import timedelta
from itertools import count
from typing import Any

import pytest

from geonotes.core.config import get_app_config
from geonotes.core.exceptions import PersistenceError
from geonotes.core.utils import utc_now
from geonotes.schemas.note import NoteCreate, NoteRead
from geonotes.services.classifier import ContentClassifier
from geonotes.services.moderation import create_moderation_gate
from geonotes.services.note_store import NoteStore


# =============================================================================
# Note Fixtures
# =============================================================================


_note_ids = count(1)


def build_note(
    latitude: float = 24.58,
    longitude: float = 73.71,
    text: str | None = "Quiet lakeside bench",
    owner_id: str = "owner-1",
    id: str | None = None,
    age_seconds: int = 0,
) -> NoteRead:
    return NoteRead(
        id=id or f"note-{next(_note_ids)}",
        created_at=utc_now() - timedelta(seconds=age_seconds),
        text=text,
        latitude=latitude,
        longitude=longitude,
        owner_id=owner_id,
    )


@pytest.fixture
def make_note() -> Callable[..., NoteRead]:
    """
    Factory for NoteRead instances.

    Usage:
        def test_something(make_note):
            note = make_note(latitude=10.0, longitude=20.0, id="n1")
    """
    return build_note


# =============================================================================
# Backend Fixtures
# =============================================================================


class FakeNoteBackend:
    """
    In-memory stand-in for NoteBackend.

    ``fail_*`` flags make the next calls raise PersistenceError. Events
    appended to ``select_gates`` hold the matching select_all call (in call
    order) until set; the row snapshot is taken before waiting.
    """

    def __init__(self) -> None:
        self.rows: list[NoteRead] = []
        self.fail_insert = False
        self.fail_select = False
        self.fail_delete = False
        self.select_calls = 0
        self.inserted: list[NoteCreate] = []
        self.deleted: list[tuple[str, str]] = []
        self.select_gates: list[asyncio.Event] = []
        self.insert_gate: asyncio.Event | None = None

    async def insert(self, data: NoteCreate) -> NoteRead:
        self.inserted.append(data)
        if self.insert_gate is not None:
            await self.insert_gate.wait()
        if self.fail_insert:
            raise PersistenceError("insert_note failed")
        note = build_note(**data.model_dump())
        self.rows.insert(0, note)
        return note

    async def select_all(self) -> list[NoteRead]:
        self.select_calls += 1
        snapshot = list(self.rows)
        if self.select_gates:
            await self.select_gates.pop(0).wait()
        if self.fail_select:
            raise PersistenceError("select_notes failed")
        return snapshot

    async def delete(self, note_id: str, owner_id: str) -> None:
        self.deleted.append((note_id, owner_id))
        if self.fail_delete:
            raise PersistenceError("delete_note failed")
        for row in self.rows:
            if row.id == note_id and row.owner_id == owner_id:
                self.rows.remove(row)
                return
        raise PersistenceError("delete_note failed: Note not found for this owner")


@pytest.fixture
def fake_backend() -> FakeNoteBackend:
    return FakeNoteBackend()


@pytest.fixture
def note_store(fake_backend: FakeNoteBackend) -> NoteStore:
    return NoteStore(fake_backend, owner_id="owner-1")


# =============================================================================
# Moderation Fixtures
# =============================================================================


class StubClassifier(ContentClassifier):
    """Classifier with a fixed verdict, or a fixed failure."""

    def __init__(self, harmful: bool = False, error: BaseException | None = None) -> None:
        self.harmful = harmful
        self.error = error
        self.calls: list[str] = []

    async def is_harmful(self, text: str) -> bool:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.harmful


@pytest.fixture
def stub_classifier() -> StubClassifier:
    return StubClassifier()


@pytest.fixture
def heuristic_gate():
    """Heuristic-only gate with the project's moderation.yaml rules."""
    return create_moderation_gate(get_app_config().moderation, classifier_enabled=False)


@pytest.fixture
def classifier_gate(stub_classifier: StubClassifier):
    """Heuristic + classifier gate backed by ``stub_classifier``."""
    return create_moderation_gate(
        get_app_config().moderation,
        classifier=stub_classifier,
        classifier_enabled=True,
    )


# =============================================================================
# Misc
# =============================================================================


@pytest.fixture
def geocoder_place() -> Callable[..., dict[str, Any]]:
    """Factory for raw geocoder place objects."""

    def _place(
        place_id: int | None = 1,
        display_name: str = "City Palace, Udaipur, Rajasthan, India",
        lat: str = "24.5764",
        lon: str = "73.6835",
        **extra: Any,
    ) -> dict[str, Any]:
        place: dict[str, Any] = {"display_name": display_name, "lat": lat, "lon": lon, **extra}
        if place_id is not None:
            place["place_id"] = place_id
        return place

    return _place
