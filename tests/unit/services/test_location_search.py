"""
Unit Tests for the Location Search Client.

The geocoder is served by httpx.MockTransport, so requests never leave
the process and every query can be inspected.
"""

import asyncio

import httpx
import pytest

from geonotes.core.exceptions import SearchProviderError
from geonotes.repositories.local_state import LocalStateRepository
from geonotes.services.location_search import (
    UNKNOWN_LOCATION,
    GeocoderClient,
    LocationSearchClient,
    parse_results,
    parse_suggestions,
)
from geonotes.services.map_view import ViewportState
from geonotes.services.recent_searches import RecentSearches


class FakeGeocoder:
    """Request log plus canned responses keyed by path."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, httpx.Response] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.get(request.url.path, httpx.Response(200, json=[]))

    @property
    def queries(self) -> list[str]:
        return [r.url.params["q"] for r in self.requests if r.url.path == "/search"]


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def client(geocoder) -> GeocoderClient:
    return GeocoderClient(
        "https://geocoder.test/",
        user_agent="geonotes-tests",
        transport=httpx.MockTransport(geocoder.handler),
    )


@pytest.fixture
def recents(tmp_path) -> RecentSearches:
    return RecentSearches(LocalStateRepository(tmp_path / "state.json"))


@pytest.fixture
async def search(client, recents):
    search = LocationSearchClient(client, recents, debounce_seconds=0.01)
    yield search
    await search.close()


class TestGeocoderClient:
    @pytest.mark.asyncio
    async def test_search_sends_provider_params(self, client, geocoder, geocoder_place):
        geocoder.responses["/search"] = httpx.Response(200, json=[geocoder_place()])

        items = await client.search("City Palace", limit=5, address_details=True)

        request = geocoder.requests[0]
        assert request.url.params["format"] == "json"
        assert request.url.params["q"] == "City Palace"
        assert request.url.params["limit"] == "5"
        assert request.url.params["addressdetails"] == "1"
        assert request.headers["User-Agent"] == "geonotes-tests"
        assert items[0]["place_id"] == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_reverse_sends_coordinates(self, client, geocoder):
        geocoder.responses["/reverse"] = httpx.Response(200, json={"display_name": "Somewhere"})

        data = await client.reverse(24.58, 73.71)

        params = geocoder.requests[0].url.params
        assert (params["lat"], params["lon"]) == ("24.58", "73.71")
        assert data["display_name"] == "Somewhere"
        await client.close()

    @pytest.mark.asyncio
    async def test_http_error_raises_provider_error(self, client, geocoder):
        geocoder.responses["/search"] = httpx.Response(503)

        with pytest.raises(SearchProviderError):
            await client.search("x", limit=3, address_details=False)
        await client.close()

    @pytest.mark.asyncio
    async def test_non_list_search_response_raises(self, client, geocoder):
        geocoder.responses["/search"] = httpx.Response(200, json={"error": "nope"})

        with pytest.raises(SearchProviderError):
            await client.search("x", limit=3, address_details=False)
        await client.close()

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, client, geocoder):
        geocoder.responses["/search"] = httpx.Response(200, text="<html>")

        with pytest.raises(SearchProviderError):
            await client.search("x", limit=3, address_details=False)
        await client.close()


class TestParsing:
    def test_result_fallbacks(self, geocoder_place):
        results = parse_results([geocoder_place(place_id=None, display_name="Lake Pichola, Udaipur")])

        result = results[0]
        assert result.id == "0"
        assert result.name == "Lake Pichola"
        assert result.type == "unknown"
        assert result.importance == 0

    def test_provider_fields_win(self, geocoder_place):
        place = geocoder_place(place_id=42, name="City Palace", type="palace", importance=0.7)

        result = parse_results([place])[0]

        assert (result.id, result.name, result.type, result.importance) == ("42", "City Palace", "palace", 0.7)
        assert (result.lat, result.lon) == (24.5764, 73.6835)

    def test_malformed_items_are_skipped(self, geocoder_place):
        items = [{"lat": "1"}, geocoder_place(lat="north"), geocoder_place(place_id=7)]

        assert [r.id for r in parse_results(items)] == ["7"]

    def test_suggestions(self, geocoder_place):
        suggestions = parse_suggestions([geocoder_place(place_id=3), {"no": "display name"}])

        assert len(suggestions) == 1
        assert suggestions[0].id == "3"
        assert suggestions[0].name == "City Palace"


class TestSuggestions:
    @pytest.mark.asyncio
    async def test_blank_query_clears_without_request(self, search, geocoder):
        search.suggestions = ["stale"]

        assert await search.get_suggestions("   ") == []

        assert search.suggestions == []
        assert geocoder.requests == []

    @pytest.mark.asyncio
    async def test_returns_suggestions_after_debounce(self, search, geocoder, geocoder_place):
        geocoder.responses["/search"] = httpx.Response(200, json=[geocoder_place()])

        suggestions = await search.get_suggestions("City")

        assert [s.name for s in suggestions] == ["City Palace"]
        params = geocoder.requests[0].url.params
        assert params["limit"] == "3"
        assert params["addressdetails"] == "0"

    @pytest.mark.asyncio
    async def test_only_latest_keystroke_hits_the_provider(self, search, geocoder):
        first = asyncio.create_task(search.get_suggestions("Uda"))
        await asyncio.sleep(0)

        latest = await search.get_suggestions("Udaipur")

        assert await first is None
        assert latest == []
        assert geocoder.queries == ["Udaipur"]

    @pytest.mark.asyncio
    async def test_response_for_superseded_query_is_discarded(self, client, recents, geocoder_place):
        held = asyncio.Event()

        async def no_wait(seconds):
            return None

        search = LocationSearchClient(client, recents, sleep=no_wait)
        original_search = client.search

        async def slow_search(query, limit, address_details):
            if query == "Uda":
                await held.wait()
            return await original_search(query, limit, address_details)

        client.search = slow_search
        stale = asyncio.create_task(search.get_suggestions("Uda"))
        await asyncio.sleep(0)
        await search.get_suggestions("Udaipur")
        held.set()

        assert await stale is None
        await search.close()

    @pytest.mark.asyncio
    async def test_provider_failure_gives_empty_list(self, search, geocoder):
        geocoder.responses["/search"] = httpx.Response(500)

        assert await search.get_suggestions("City") == []


class TestSearchLocations:
    @pytest.mark.asyncio
    async def test_top_result_recenters_and_is_recorded(self, search, geocoder, geocoder_place, recents):
        geocoder.responses["/search"] = httpx.Response(
            200,
            json=[geocoder_place(place_id=1), geocoder_place(place_id=2, display_name="Other, Place")],
        )
        viewport = ViewportState()

        results = await search.search_locations("  City Palace  ", viewport)

        assert [r.id for r in results] == ["1", "2"]
        assert geocoder.queries == ["City Palace"]
        assert geocoder.requests[0].url.params["limit"] == "5"
        assert viewport.center.latitude == pytest.approx(24.5764)
        assert viewport.zoom == 15
        assert recents.entries[0].label == "City Palace"
        assert recents.entries[0].sublabel == "City Palace, Udaipur, Rajasthan, India"

    @pytest.mark.asyncio
    async def test_no_results_records_raw_query(self, search, recents):
        viewport = ViewportState()

        results = await search.search_locations("Atlantis", viewport)

        assert results == []
        assert viewport.center is None
        assert recents.entries[0].label == "Atlantis"

    @pytest.mark.asyncio
    async def test_provider_failure_degrades_to_empty(self, search, geocoder, recents):
        geocoder.responses["/search"] = httpx.Response(500)

        assert await search.search_locations("City Palace") == []
        assert recents.entries[0].label == "City Palace"

    @pytest.mark.asyncio
    async def test_blank_query_does_nothing(self, search, geocoder, recents):
        assert await search.search_locations("   ") == []
        assert geocoder.requests == []
        assert recents.entries == []

    @pytest.mark.asyncio
    async def test_explicit_search_supersedes_pending_suggestions(self, search):
        pending = asyncio.create_task(search.get_suggestions("Uda"))
        await asyncio.sleep(0)

        await search.search_locations("Udaipur")

        assert await pending is None


class TestReverseGeocode:
    @pytest.mark.asyncio
    async def test_returns_display_name(self, search, geocoder):
        geocoder.responses["/reverse"] = httpx.Response(200, json={"display_name": "Fateh Sagar Lake, Udaipur"})

        assert await search.reverse_geocode(24.6, 73.68) == "Fateh Sagar Lake, Udaipur"

    @pytest.mark.asyncio
    async def test_failure_is_unknown_location(self, search, geocoder):
        geocoder.responses["/reverse"] = httpx.Response(500)

        assert await search.reverse_geocode(24.6, 73.68) == UNKNOWN_LOCATION

    @pytest.mark.asyncio
    async def test_missing_name_is_unknown_location(self, search, geocoder):
        geocoder.responses["/reverse"] = httpx.Response(200, json={"error": "Unable to geocode"})

        assert await search.reverse_geocode(0, 0) == UNKNOWN_LOCATION
