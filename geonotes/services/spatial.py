"""
Spatial Query Engine.

Great-circle distances, nearby-note search and the display ring drawn
around a search center. The ring is for display only and never affects
which notes count as nearby.
"""

import math

from geonotes.schemas.geo import Coordinates, NearbyResult, NoLocationSelected
from geonotes.services.geopin import PinSnapshot
from geonotes.services.note_store import NoteStore

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_M = 6_371_000.0


def haversine_distance_km(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance between two points, in kilometres."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def destination_point(origin: Coordinates, bearing_rad: float, distance_m: float) -> Coordinates:
    """Point reached from ``origin`` along ``bearing_rad`` after ``distance_m`` metres."""
    angular = distance_m / EARTH_RADIUS_M
    lat1 = math.radians(origin.latitude)
    lng1 = math.radians(origin.longitude)

    lat2 = math.asin(
        math.sin(lat1) * math.cos(angular)
        + math.cos(lat1) * math.sin(angular) * math.cos(bearing_rad)
    )
    lng2 = lng1 + math.atan2(
        math.sin(bearing_rad) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2),
    )

    longitude = (math.degrees(lng2) + 540.0) % 360.0 - 180.0
    latitude = max(-90.0, min(90.0, math.degrees(lat2)))
    return Coordinates(latitude=latitude, longitude=longitude)


def circle_polygon(
    center: Coordinates,
    radius_meters: float,
    point_count: int = 64,
) -> list[Coordinates]:
    """
    Closed ring approximating a circle of ``radius_meters`` around ``center``.

    Returns ``point_count + 1`` points; the last repeats the first.

    Raises:
        ValueError: If point_count < 3 or radius_meters < 0
    """
    if point_count < 3:
        raise ValueError("point_count must be at least 3")
    if radius_meters < 0:
        raise ValueError("radius_meters must not be negative")

    ring = [
        destination_point(center, 2 * math.pi * i / point_count, radius_meters)
        for i in range(point_count)
    ]
    ring.append(ring[0])
    return ring


class SpatialQueryEngine:
    """Nearby search over the notes currently held by a Note Store."""

    def __init__(
        self,
        store: NoteStore,
        default_radius_km: float = 1.0,
        circle_point_count: int = 64,
    ) -> None:
        self._store = store
        self.default_radius_km = default_radius_km
        self.circle_point_count = circle_point_count

    def nearby(
        self,
        center: Coordinates | None,
        radius_km: float | None = None,
    ) -> list[NearbyResult] | NoLocationSelected:
        """
        Notes within ``radius_km`` of ``center``, closest first.

        Ties keep Note Store order. With no center (no active pin) the
        result is ``NoLocationSelected`` rather than an empty list.
        """
        if center is None:
            return NoLocationSelected()

        radius = self.default_radius_km if radius_km is None else radius_km
        results = []
        for note in self._store.notes:
            point = Coordinates(latitude=note.latitude, longitude=note.longitude)
            distance = haversine_distance_km(center, point)
            if distance <= radius:
                results.append(NearbyResult(note=note, distance_km=distance))

        results.sort(key=lambda result: result.distance_km)
        return results

    def nearby_for_pin(
        self,
        snapshot: PinSnapshot,
        radius_km: float | None = None,
    ) -> list[NearbyResult] | NoLocationSelected:
        """Nearby search centred on the pin of a GeoPin snapshot, if any."""
        center = snapshot.pin.coordinates if snapshot.pin is not None else None
        return self.nearby(center, radius_km)

    def search_ring(self, center: Coordinates, radius_km: float | None = None) -> list[Coordinates]:
        """Display ring matching a nearby search of the same radius."""
        radius = self.default_radius_km if radius_km is None else radius_km
        return circle_polygon(center, radius * 1000.0, self.circle_point_count)
