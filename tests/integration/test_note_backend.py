"""
Integration Tests for the Note Backend.

Real SQLAlchemy sessions against the test database; change notifications
go through the in-process feed.
"""

from unittest.mock import AsyncMock

import pytest

from geonotes.core.exceptions import PersistenceError
from geonotes.schemas.note import NoteCreate


def _note(text: str | None = "Quiet lakeside bench", owner_id: str = "owner-1") -> NoteCreate:
    return NoteCreate(text=text, latitude=24.58, longitude=73.71, owner_id=owner_id)


class TestInsert:
    @pytest.mark.asyncio
    async def test_assigns_id_and_timestamp(self, note_backend):
        note = await note_backend.insert(_note())

        assert note.id
        assert note.created_at is not None
        assert note.text == "Quiet lakeside bench"

    @pytest.mark.asyncio
    async def test_text_is_optional(self, note_backend):
        note = await note_backend.insert(_note(text=None))
        assert note.text is None

    @pytest.mark.asyncio
    async def test_publishes_insert(self, note_backend, change_feed):
        handler = AsyncMock()
        await change_feed.subscribe("notes", handler)

        await note_backend.insert(_note())

        assert handler.await_args[0][0].event_type == "INSERT"


class TestSelectAll:
    @pytest.mark.asyncio
    async def test_newest_first(self, note_backend):
        first = await note_backend.insert(_note("first note here"))
        second = await note_backend.insert(_note("second note here"))

        notes = await note_backend.select_all()

        assert [n.id for n in notes] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_empty_table(self, note_backend):
        assert await note_backend.select_all() == []


class TestDelete:
    @pytest.mark.asyncio
    async def test_owner_can_delete(self, note_backend, change_feed):
        handler = AsyncMock()
        note = await note_backend.insert(_note())
        await change_feed.subscribe("notes", handler)

        await note_backend.delete(note.id, "owner-1")

        assert await note_backend.select_all() == []
        assert handler.await_args[0][0].event_type == "DELETE"

    @pytest.mark.asyncio
    async def test_other_owner_cannot_delete(self, note_backend, change_feed):
        handler = AsyncMock()
        note = await note_backend.insert(_note())
        await change_feed.subscribe("notes", handler)

        with pytest.raises(PersistenceError):
            await note_backend.delete(note.id, "someone-else")

        assert [n.id for n in await note_backend.select_all()] == [note.id]
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_note(self, note_backend):
        with pytest.raises(PersistenceError):
            await note_backend.delete("no-such-id", "owner-1")
