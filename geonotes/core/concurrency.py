"""
Concurrency Infrastructure.

All engine state is owned by a single asyncio event loop. Network calls are
awaited without blocking the loop and their completions are applied one at a
time. This module provides the two primitives the engine needs on top of that:

Semaphores:
    Created per-dependency to limit concurrent access to external services.
    Sizing is configured in config/settings/concurrency.yaml.

Request generations:
    Monotonic counters used to discard results of superseded requests
    (debounced suggestions, abandoned note drafts, overlapping reloads).

Usage:
    from geonotes.core.concurrency import RequestGeneration, get_semaphore

    async with get_semaphore("geocoder"):
        response = await client.get(url)

    generation = RequestGeneration()
    token = generation.advance()
    result = await slow_call()
    if generation.is_current(token):
        apply(result)
"""

import asyncio

from geonotes.core.logging import get_logger

logger = get_logger(__name__)

_semaphores: dict[str, asyncio.Semaphore] = {}


def get_semaphore(name: str) -> asyncio.Semaphore:
    """Get a named semaphore for concurrency-limiting external calls.

    Semaphores are created lazily. The capacity is read from concurrency.yaml
    under `semaphores.<name>`. If the name is not configured, defaults to 20.
    """
    if name not in _semaphores:
        from geonotes.core.config import get_app_config
        semaphore_config = get_app_config().concurrency.semaphores
        capacity = getattr(semaphore_config, name, 20)
        _semaphores[name] = asyncio.Semaphore(capacity)
        logger.debug("Semaphore created", extra={"name": name, "capacity": capacity})
    return _semaphores[name]


def reset_semaphores() -> None:
    """Drop all semaphores. Called on shutdown so a new event loop starts clean."""
    _semaphores.clear()
    logger.debug("Semaphores cleared")


class RequestGeneration:
    """Monotonic token source for cooperative cancellation.

    Every new request calls ``advance()`` and keeps the returned token. When
    its result arrives, ``is_current(token)`` tells whether a newer request
    (or an explicit ``invalidate()``) has superseded it in the meantime.
    """

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def advance(self) -> int:
        self._current += 1
        return self._current

    def invalidate(self) -> None:
        """Supersede every outstanding token without starting a new request."""
        self._current += 1

    def is_current(self, token: int) -> bool:
        return token == self._current
