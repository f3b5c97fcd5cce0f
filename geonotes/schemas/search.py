"""
Location Search Schemas.

Geocoder suggestions/results and the persisted recent-search entry.
"""

from pydantic import BaseModel, ConfigDict, Field


class SearchSuggestion(BaseModel):
    """Lightweight geocoder hit used for type-ahead suggestions."""

    id: str
    name: str
    display_name: str
    type: str = "unknown"


class SearchResult(BaseModel):
    """Ranked geocoder hit returned by an explicit search."""

    id: str
    name: str
    display_name: str
    lat: float
    lon: float
    type: str = "unknown"
    importance: float = 0.0


class RecentSearchEntry(BaseModel):
    """One entry of the recent-search history."""

    label: str = Field(min_length=1)
    sublabel: str | None = None

    model_config = ConfigDict(frozen=True)
