"""
Note Backend.

Persistence backend for notes: insert, ordered select-all and
owner-restricted delete against the ``notes`` table, with a change
notification published after every committed mutation.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geonotes.events.publishers import TableChangePublisher
from geonotes.repositories.note import NoteRepository
from geonotes.schemas.note import NoteCreate, NoteRead
from geonotes.services.base import BaseService


class NoteBackend(BaseService):
    """
    Database-backed note persistence.

    All methods raise PersistenceError on failure. Returned notes are
    detached immutable ``NoteRead`` views, never ORM instances.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: TableChangePublisher,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(session_factory, timeout)
        self._publisher = publisher

    async def insert(self, data: NoteCreate) -> NoteRead:
        """
        Insert a note.

        Args:
            data: Validated note fields

        Returns:
            The persisted note with its server-assigned id and timestamp
        """
        self._log_operation("Inserting note", owner_id=data.owner_id)

        async def work(session: AsyncSession) -> NoteRead:
            note = await NoteRepository(session).create(**data.model_dump())
            return NoteRead.model_validate(note)

        note = await self._in_transaction("insert_note", work)
        self._log_debug("Note inserted", note_id=note.id)
        await self._publisher.row_inserted()
        return note

    async def select_all(self) -> list[NoteRead]:
        """
        Get every note, newest first.

        Returns:
            List of notes ordered by created_at descending
        """

        async def work(session: AsyncSession) -> list[NoteRead]:
            notes = await NoteRepository(session).list_newest_first()
            return [NoteRead.model_validate(note) for note in notes]

        return await self._in_transaction("select_notes", work)

    async def delete(self, note_id: str, owner_id: str) -> None:
        """
        Delete one of the owner's notes.

        Args:
            note_id: Note ID to delete
            owner_id: Owner performing the delete

        Raises:
            PersistenceError: If the note does not exist, is not owned by
                owner_id, or the delete fails
        """
        self._log_operation("Deleting note", note_id=note_id, owner_id=owner_id)

        async def work(session: AsyncSession) -> None:
            await NoteRepository(session).delete_owned(note_id, owner_id)

        await self._in_transaction("delete_note", work)
        await self._publisher.row_deleted()
