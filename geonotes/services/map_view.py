"""
Map View Collaborators.

The engine never renders anything. Where it needs a visible side effect on
the map (placing or removing the pin marker, recentering the viewport) it
calls one of these small interfaces, passed in explicitly by the caller.
A UI implements them on top of its map library; the in-memory versions
record calls and serve the CLI and tests.
"""

from dataclasses import dataclass, field
from itertools import count
from typing import Protocol

from geonotes.schemas.geo import Coordinates


class MarkerLayer(Protocol):
    def add_marker(self, coordinates: Coordinates) -> str: ...

    def remove_marker(self, marker_ref: str) -> None: ...


class Viewport(Protocol):
    def fly_to(self, latitude: float, longitude: float, zoom: int) -> None: ...


@dataclass
class InMemoryMarkerLayer:
    """Marker layer that keeps placed markers in a dict."""

    markers: dict[str, Coordinates] = field(default_factory=dict)
    _ids: count = field(default_factory=lambda: count(1), repr=False)

    def add_marker(self, coordinates: Coordinates) -> str:
        marker_ref = f"marker-{next(self._ids)}"
        self.markers[marker_ref] = coordinates
        return marker_ref

    def remove_marker(self, marker_ref: str) -> None:
        self.markers.pop(marker_ref, None)


@dataclass
class ViewportState:
    """Viewport that remembers where it was last sent."""

    center: Coordinates | None = None
    zoom: int | None = None

    def fly_to(self, latitude: float, longitude: float, zoom: int) -> None:
        self.center = Coordinates(latitude=latitude, longitude=longitude)
        self.zoom = zoom
