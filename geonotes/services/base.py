"""
Base Service.

Base class for services that talk to the database. Each operation runs in
its own session and transaction, bounded by the persistence semaphore and
timeout, with SQLAlchemy and lookup failures converted to PersistenceError.

Usage:
    from geonotes.services.base import BaseService

    class NoteBackend(BaseService):
        async def insert(self, data: NoteCreate) -> NoteRead:
            async def work(session: AsyncSession) -> NoteRead:
                note = await NoteRepository(session).create(**data.model_dump())
                return NoteRead.model_validate(note)

            return await self._in_transaction("insert_note", work)
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geonotes.core.concurrency import get_semaphore
from geonotes.core.exceptions import NotFoundError, PersistenceError
from geonotes.core.logging import get_logger

T = TypeVar("T")


class BaseService:
    """
    Base class for database-backed services.

    Provides:
    - One session and transaction per operation
    - Timeout and concurrency limit on every operation
    - Error wrapping for database operations
    - Logging context
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 10.0,
    ) -> None:
        """
        Initialize the service with a session factory.

        Args:
            session_factory: SQLAlchemy async session factory
            timeout: Seconds allowed per operation, including commit
        """
        self._session_factory = session_factory
        self._timeout = timeout
        self._logger = get_logger(self.__class__.__module__)

    async def _in_transaction(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """
        Run ``work`` in a fresh session and commit it.

        Args:
            operation: Description of the operation for logging
            work: Coroutine function receiving the session

        Returns:
            Result of ``work``

        Raises:
            PersistenceError: For any database, lookup or timeout failure
        """
        try:
            async with get_semaphore("persistence"):
                async with asyncio.timeout(self._timeout):
                    async with self._session_factory() as session:
                        result = await work(session)
                        await session.commit()
                        return result
        except NotFoundError as e:
            self._logger.warning(
                "Persistence target not found",
                extra={"operation": operation, "error": e.message},
            )
            raise PersistenceError(f"{operation} failed: {e.message}") from e
        except IntegrityError as e:
            self._logger.warning(
                "Database integrity error",
                extra={"operation": operation, "error": str(e)},
            )
            raise PersistenceError(f"Database constraint violation: {operation}") from e
        except SQLAlchemyError as e:
            self._logger.error(
                "Database error",
                extra={"operation": operation, "error": str(e)},
            )
            raise PersistenceError(f"Database operation failed: {operation}") from e
        except TimeoutError as e:
            self._logger.error(
                "Database operation timed out",
                extra={"operation": operation, "timeout": self._timeout},
            )
            raise PersistenceError(f"Database operation timed out: {operation}") from e

    def _log_operation(self, operation: str, **context: Any) -> None:
        """Log a service operation with context."""
        self._logger.info(
            operation,
            extra={"service": self.__class__.__name__, **context},
        )

    def _log_debug(self, message: str, **context: Any) -> None:
        """Log debug information."""
        self._logger.debug(
            message,
            extra={"service": self.__class__.__name__, **context},
        )
