"""
Location Search Client.

Place lookup against a Nominatim-compatible geocoder:

    GeocoderClient        - thin async HTTP client for /search and /reverse
    LocationSearchClient  - debounced suggestions, explicit search with
                            viewport recentering and recent-search history,
                            reverse geocoding

Geocoder failures never reach the user: they are logged and the caller gets
an empty result (or "Unknown location" for reverse lookups).
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import aiobreaker
import httpx
from pydantic import ValidationError

from geonotes.core.concurrency import RequestGeneration, get_semaphore
from geonotes.core.exceptions import SearchProviderError
from geonotes.core.logging import get_logger, log_with_source
from geonotes.core.resilience import create_circuit_breaker
from geonotes.schemas.search import SearchResult, SearchSuggestion
from geonotes.services.map_view import Viewport
from geonotes.services.recent_searches import RecentSearches

logger = get_logger(__name__)

UNKNOWN_LOCATION = "Unknown location"


class GeocoderClient:
    """
    HTTP client for the geocoding provider.

    Features:
    - Base URL, timeout and User-Agent from geocoder.yaml / application.yaml
    - Circuit breaker and concurrency limit around every request
    - All transport, status and decoding failures raised as SearchProviderError

    Usage:
        client = GeocoderClient("https://nominatim.openstreetmap.org")
        items = await client.search("Udaipur", limit=5, address_details=True)
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        user_agent: str = "geonotes",
        breaker: aiobreaker.CircuitBreaker | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._user_agent = user_agent
        self._breaker = breaker or create_circuit_breaker("geocoder")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"User-Agent": self._user_agent},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        client = self._get_client()
        log_with_source(logger, "search", "debug", "Geocoder request", path=path)

        try:
            async with get_semaphore("geocoder"):
                response = await self._breaker.call_async(client.get, path, params=params)
            response.raise_for_status()
            return response.json()
        except aiobreaker.CircuitBreakerError as e:
            raise SearchProviderError("Geocoder circuit open") from e
        except httpx.HTTPError as e:
            log_with_source(logger, "search", "warning", "Geocoder request failed", path=path, error=str(e))
            raise SearchProviderError(f"Geocoder request failed: {e}") from e
        except ValueError as e:
            raise SearchProviderError("Geocoder returned invalid JSON") from e

    async def search(self, query: str, limit: int, address_details: bool) -> list[dict[str, Any]]:
        """GET /search; returns the raw place list."""
        data = await self._get_json(
            "/search",
            {
                "format": "json",
                "q": query,
                "limit": limit,
                "addressdetails": 1 if address_details else 0,
            },
        )
        if not isinstance(data, list):
            raise SearchProviderError("Geocoder search did not return a list")
        return data

    async def reverse(self, latitude: float, longitude: float) -> dict[str, Any]:
        """GET /reverse; returns the raw place object."""
        data = await self._get_json(
            "/reverse",
            {"format": "json", "lat": latitude, "lon": longitude},
        )
        if not isinstance(data, dict):
            raise SearchProviderError("Geocoder reverse did not return an object")
        return data


def _place_name(item: dict[str, Any]) -> str:
    return item.get("name") or str(item.get("display_name", "")).split(",")[0].strip()


def parse_suggestions(items: list[dict[str, Any]]) -> list[SearchSuggestion]:
    suggestions = []
    for index, item in enumerate(items):
        try:
            suggestions.append(SearchSuggestion(
                id=str(item.get("place_id") or index),
                name=_place_name(item),
                display_name=item["display_name"],
                type=item.get("type") or "unknown",
            ))
        except (KeyError, ValidationError):
            logger.debug("Skipping malformed geocoder item", extra={"index": index})
    return suggestions


def parse_results(items: list[dict[str, Any]]) -> list[SearchResult]:
    results = []
    for index, item in enumerate(items):
        try:
            results.append(SearchResult(
                id=str(item.get("place_id") or index),
                name=_place_name(item),
                display_name=item["display_name"],
                lat=float(item["lat"]),
                lon=float(item["lon"]),
                type=item.get("type") or "unknown",
                importance=float(item.get("importance") or 0),
            ))
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping malformed geocoder item", extra={"index": index})
    return results


class LocationSearchClient:
    """Debounced place search with recent-search history."""

    def __init__(
        self,
        geocoder: GeocoderClient,
        recents: RecentSearches,
        debounce_seconds: float = 0.3,
        suggestion_limit: int = 3,
        search_limit: int = 5,
        recenter_zoom: int = 15,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._geocoder = geocoder
        self.recents = recents
        self.debounce_seconds = debounce_seconds
        self.suggestion_limit = suggestion_limit
        self.search_limit = search_limit
        self.recenter_zoom = recenter_zoom
        self._sleep = sleep
        self._debounce = RequestGeneration()
        self.suggestions: list[SearchSuggestion] = []

    async def get_suggestions(self, query: str) -> list[SearchSuggestion] | None:
        """
        Type-ahead suggestions for ``query``.

        Every call restarts the debounce timer. Only the most recent call
        applies its result to ``suggestions`` and returns it; calls that were
        superseded while waiting or while their request was in flight
        return None.
        """
        token = self._debounce.advance()

        if not query.strip():
            self.suggestions = []
            return []

        await self._sleep(self.debounce_seconds)
        if not self._debounce.is_current(token):
            return None

        try:
            items = await self._geocoder.search(query, self.suggestion_limit, address_details=False)
        except SearchProviderError as e:
            log_with_source(logger, "search", "warning", "Suggestions unavailable", error=e.message)
            items = []

        if not self._debounce.is_current(token):
            log_with_source(logger, "search", "debug", "Discarding superseded suggestions", query=query)
            return None

        self.suggestions = parse_suggestions(items)
        return self.suggestions

    async def search_locations(self, query: str, viewport: Viewport | None = None) -> list[SearchResult]:
        """
        Explicit search (Enter key or search button).

        The top result recenters ``viewport`` and goes into the recent
        history; with no results the raw query is recorded instead. Pending
        suggestions are superseded.
        """
        self._debounce.invalidate()

        trimmed = query.strip()
        if not trimmed:
            return []

        try:
            items = await self._geocoder.search(trimmed, self.search_limit, address_details=True)
        except SearchProviderError as e:
            log_with_source(logger, "search", "warning", "Search unavailable", error=e.message)
            items = []

        results = parse_results(items)

        if results:
            top = results[0]
            if viewport is not None:
                viewport.fly_to(top.lat, top.lon, self.recenter_zoom)
            self.recents.add(top.name, top.display_name)
        else:
            self.recents.add(trimmed)

        log_with_source(logger, "search", "info", "Location search", query=trimmed, results=len(results))
        return results

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        """Human-readable place description, or "Unknown location"."""
        try:
            data = await self._geocoder.reverse(latitude, longitude)
        except SearchProviderError as e:
            log_with_source(logger, "search", "warning", "Reverse geocoding unavailable", error=e.message)
            return UNKNOWN_LOCATION
        return data.get("display_name") or UNKNOWN_LOCATION

    async def close(self) -> None:
        await self._geocoder.close()
