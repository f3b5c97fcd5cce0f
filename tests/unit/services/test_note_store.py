"""
Unit Tests for the Note Store.

The store runs against an in-memory backend whose calls can be made to
fail or held open to interleave concurrent operations.
"""

import asyncio

import pytest

from geonotes.core.exceptions import PersistenceError
from geonotes.schemas.note import NoteCreate


class TestLoadAll:
    @pytest.mark.asyncio
    async def test_replaces_cache_with_backend_rows(self, note_store, fake_backend, make_note):
        fake_backend.rows = [make_note(id="b"), make_note(id="a")]

        notes = await note_store.load_all()

        assert [n.id for n in notes] == ["b", "a"]
        assert [n.id for n in note_store] == ["b", "a"]
        assert len(note_store) == 2
        assert note_store.last_loaded_at is not None

    @pytest.mark.asyncio
    async def test_failure_leaves_cache_unchanged(self, note_store, fake_backend, make_note):
        fake_backend.rows = [make_note(id="a")]
        await note_store.load_all()
        fake_backend.rows = []
        fake_backend.fail_select = True

        with pytest.raises(PersistenceError):
            await note_store.load_all()

        assert [n.id for n in note_store] == ["a"]

    @pytest.mark.asyncio
    async def test_overtaken_reload_is_discarded(self, note_store, fake_backend, make_note):
        """A slow reload that finishes after a newer one must not roll the cache back."""
        fake_backend.rows = [make_note(id="old")]
        held = asyncio.Event()
        fake_backend.select_gates.append(held)
        slow = asyncio.create_task(note_store.load_all())
        await asyncio.sleep(0)

        fake_backend.rows = [make_note(id="new"), make_note(id="old")]
        await note_store.load_all()
        held.set()
        await slow

        assert [n.id for n in note_store] == ["new", "old"]

    def test_get_by_id(self, note_store):
        assert note_store.get("missing") is None


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_reloads_cache(self, note_store, fake_backend, make_note):
        fake_backend.rows = [make_note(id="existing")]

        note = await note_store.create(
            NoteCreate(text="Quiet lakeside bench", latitude=24.58, longitude=73.71, owner_id="owner-1")
        )

        assert note.id
        assert [n.id for n in note_store] == [note.id, "existing"]
        assert fake_backend.select_calls == 1

    @pytest.mark.asyncio
    async def test_create_survives_failed_reload(self, note_store, fake_backend, make_note):
        fake_backend.rows = [make_note(id="existing")]
        await note_store.load_all()
        fake_backend.fail_select = True

        note = await note_store.create(
            NoteCreate(text="Quiet lakeside bench", latitude=24.58, longitude=73.71, owner_id="owner-1")
        )

        assert note.id
        assert [n.id for n in note_store] == ["existing"]
        assert len(fake_backend.rows) == 2

    @pytest.mark.asyncio
    async def test_create_failure_propagates(self, note_store, fake_backend):
        fake_backend.fail_insert = True

        with pytest.raises(PersistenceError):
            await note_store.create(NoteCreate(latitude=1, longitude=2, owner_id="owner-1"))


class TestDelete:
    @pytest.mark.asyncio
    async def test_removes_note_before_backend_confirms(self, note_store, fake_backend, make_note):
        fake_backend.rows = [make_note(id="a"), make_note(id="b")]
        await note_store.load_all()
        seen_during_delete = []
        original_delete = fake_backend.delete

        async def observing_delete(note_id, owner_id):
            seen_during_delete.extend(n.id for n in note_store)
            await original_delete(note_id, owner_id)

        fake_backend.delete = observing_delete

        await note_store.delete("a")

        assert seen_during_delete == ["b"]
        assert [n.id for n in note_store] == ["b"]
        assert [n.id for n in fake_backend.rows] == ["b"]

    @pytest.mark.asyncio
    async def test_uses_store_owner(self, note_store, fake_backend, make_note):
        fake_backend.rows = [make_note(id="a")]
        await note_store.load_all()

        await note_store.delete("a")

        assert fake_backend.deleted == [("a", "owner-1")]

    @pytest.mark.asyncio
    async def test_failed_delete_restores_by_full_reload(self, note_store, fake_backend, make_note):
        fake_backend.rows = [make_note(id="a"), make_note(id="b")]
        await note_store.load_all()
        fake_backend.rows.insert(0, make_note(id="from-elsewhere"))
        fake_backend.fail_delete = True

        with pytest.raises(PersistenceError):
            await note_store.delete("a")

        assert [n.id for n in note_store] == ["from-elsewhere", "a", "b"]
        assert fake_backend.select_calls == 2

    @pytest.mark.asyncio
    async def test_not_owner_is_rolled_back(self, note_store, fake_backend, make_note):
        fake_backend.rows = [make_note(id="theirs", owner_id="someone-else")]
        await note_store.load_all()

        with pytest.raises(PersistenceError):
            await note_store.delete("theirs")

        assert [n.id for n in note_store] == ["theirs"]

    @pytest.mark.asyncio
    async def test_failed_reload_still_raises_delete_error(self, note_store, fake_backend, make_note):
        fake_backend.rows = [make_note(id="a")]
        await note_store.load_all()
        fake_backend.fail_delete = True
        fake_backend.fail_select = True

        with pytest.raises(PersistenceError, match="delete_note"):
            await note_store.delete("a")
