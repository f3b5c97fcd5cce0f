"""
Note Repository.

Data access layer for notes. Handles all database operations
for the Note model.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geonotes.core.exceptions import NotFoundError
from geonotes.models.note import Note
from geonotes.repositories.base import BaseRepository


class NoteRepository(BaseRepository[Note]):
    """
    Repository for Note model.

    Notes are never updated: the repository offers insert, ordered
    select-all and owner-restricted delete.
    """

    model = Note

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_newest_first(self) -> list[Note]:
        """
        Get every note ordered by creation time, newest first.

        Returns:
            List of all notes
        """
        result = await self.session.execute(
            select(Note).order_by(Note.created_at.desc(), Note.id)
        )
        return list(result.scalars().all())

    async def delete_owned(self, id: str, owner_id: str) -> None:
        """
        Delete a note only if it belongs to the given owner.

        Args:
            id: Note ID to delete
            owner_id: Owner performing the delete

        Raises:
            NotFoundError: If no note with this ID is owned by owner_id
        """
        instance = await self.get_by_id_or_none(id)
        if instance is None or instance.owner_id != owner_id:
            raise NotFoundError("Note not found for this owner")

        await self.session.delete(instance)
        await self.session.flush()
