"""
Note Store.

Authoritative client-side cache of persisted notes. The cache is only ever
replaced wholesale from a full backend read; there is no incremental patch
logic. Creates are never inserted optimistically, deletes are, and a failed
delete is rolled back by reloading everything rather than re-inserting the
removed note, so concurrent changes by other writers are not lost.
"""

from collections.abc import Iterator
from datetime import datetime

from geonotes.core.exceptions import PersistenceError
from geonotes.core.logging import get_logger
from geonotes.core.utils import utc_now
from geonotes.schemas.note import NoteCreate, NoteRead
from geonotes.services.note_backend import NoteBackend

logger = get_logger(__name__)


class NoteStore:
    """
    Cache of all notes, newest first.

    Overlapping reloads are tolerated: each reload is numbered when it
    starts, and a result is applied only if no later-started reload has
    been applied already.
    """

    def __init__(self, backend: NoteBackend, owner_id: str) -> None:
        self._backend = backend
        self.owner_id = owner_id
        self._notes: tuple[NoteRead, ...] = ()
        self._reloads_started = 0
        self._reload_applied = 0
        self.last_loaded_at: datetime | None = None

    @property
    def notes(self) -> tuple[NoteRead, ...]:
        """Current cache content, newest first."""
        return self._notes

    def __len__(self) -> int:
        return len(self._notes)

    def __iter__(self) -> Iterator[NoteRead]:
        return iter(self._notes)

    def get(self, note_id: str) -> NoteRead | None:
        for note in self._notes:
            if note.id == note_id:
                return note
        return None

    async def load_all(self) -> tuple[NoteRead, ...]:
        """
        Replace the cache with every note from the backend.

        Returns:
            The cache content after this reload (which may be a newer
            reload's content if this one was overtaken)

        Raises:
            PersistenceError: If the backend read fails; the cache is unchanged
        """
        self._reloads_started += 1
        ticket = self._reloads_started

        notes = await self._backend.select_all()

        if ticket < self._reload_applied:
            logger.debug(
                "Discarding overtaken reload",
                extra={"ticket": ticket, "applied": self._reload_applied},
            )
            return self._notes

        self._notes = tuple(notes)
        self._reload_applied = ticket
        self.last_loaded_at = utc_now()
        logger.debug("Note store reloaded", extra={"count": len(self._notes)})
        return self._notes

    async def create(self, data: NoteCreate) -> NoteRead:
        """
        Persist a new note, then reload the cache.

        The note is never inserted into the cache directly; it shows up
        through the full reload that follows a successful insert. A failed
        reload is logged and leaves the cache to the next reload.

        Raises:
            PersistenceError: If the insert fails
        """
        note = await self._backend.insert(data)

        try:
            await self.load_all()
        except PersistenceError as e:
            logger.warning(
                "Reload after create failed",
                extra={"note_id": note.id, "error": e.message},
            )
        return note

    async def delete(self, note_id: str) -> None:
        """
        Delete one of the owner's notes, optimistically.

        Raises:
            PersistenceError: If the backend delete fails, after the cache
                has been restored by a full reload
        """
        self._notes = tuple(note for note in self._notes if note.id != note_id)

        try:
            await self._backend.delete(note_id, self.owner_id)
        except PersistenceError:
            logger.warning("Delete failed, reloading notes", extra={"note_id": note_id})
            try:
                await self.load_all()
            except PersistenceError as reload_error:
                logger.error(
                    "Reload after failed delete also failed",
                    extra={"note_id": note_id, "error": reload_error.message},
                )
            raise
