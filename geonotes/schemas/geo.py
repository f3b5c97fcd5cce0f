"""
Geographic Schemas.

Coordinates and derived spatial results.
"""

from pydantic import BaseModel, ConfigDict, Field

from geonotes.schemas.note import NoteRead


class Coordinates(BaseModel):
    """A validated latitude/longitude pair in degrees."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    model_config = ConfigDict(frozen=True)

    def label(self) -> str:
        """Fixed-precision "lat, lng" label shown for a dropped pin."""
        return f"{self.latitude:.6f}, {self.longitude:.6f}"


class NearbyResult(BaseModel):
    """A note within the search radius and its distance from the center."""

    note: NoteRead
    distance_km: float = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class NoLocationSelected(BaseModel):
    """Returned by nearby search when there is no active pin to search from."""

    reason: str = "No location selected"

    model_config = ConfigDict(frozen=True)
