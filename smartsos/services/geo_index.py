"""Geospatial index: latest point per key plus radius queries."""

from __future__ import annotations

import math

from smartsos.core.errors import InvalidArgumentError
from smartsos.core.sos_policies import EARTH_RADIUS_KM


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two lat/lng points in kilometers."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def latitude_band(latitude: float, radius_km: float) -> tuple[float, float]:
    """Latitude range that can contain points within ``radius_km``.

    Great-circle distance is never shorter than the meridian distance, so
    anything outside this band is out of range whatever its longitude.
    """
    delta = math.degrees(radius_km / EARTH_RADIUS_KM)
    return latitude - delta, latitude + delta


def validate_coordinates(latitude: float | None, longitude: float | None) -> tuple[float, float]:
    """Return the pair as floats or raise InvalidArgumentError."""
    if latitude is None or longitude is None:
        raise InvalidArgumentError("Latitude and longitude are required")
    # bool is an int subclass; numeric strings are not coordinates
    if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in (latitude, longitude)):
        raise InvalidArgumentError("Latitude and longitude must be numbers")
    lat, lon = float(latitude), float(longitude)
    if math.isnan(lat) or math.isnan(lon):
        raise InvalidArgumentError("Latitude and longitude must be numbers")
    if not -90.0 <= lat <= 90.0:
        raise InvalidArgumentError(f"Latitude {lat} out of range [-90, 90]")
    if not -180.0 <= lon <= 180.0:
        raise InvalidArgumentError(f"Longitude {lon} out of range [-180, 180]")
    return lat, lon


def validate_radius(radius_km: float) -> float:
    if radius_km is None or math.isnan(radius_km) or radius_km < 0:
        raise InvalidArgumentError("Radius must be a non-negative number of kilometers")
    return float(radius_km)


class GeoIndex:
    """In-memory point index keyed by user id.

    Writes replace a single dict slot; queries work on a copy, so a writer
    for one key never waits on a reader or on a writer for another key.
    Queries are a linear scan with a latitude-band prefilter, which is fine
    for thousands of tracked users but not for millions.
    """

    def __init__(self) -> None:
        self._points: dict[str, tuple[float, float]] = {}

    def upsert(self, key: str, latitude: float, longitude: float) -> None:
        self._points[key] = (latitude, longitude)

    def remove(self, key: str) -> None:
        self._points.pop(key, None)

    def get(self, key: str) -> tuple[float, float] | None:
        return self._points.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._points

    def __len__(self) -> int:
        return len(self._points)

    def within(self, latitude: float, longitude: float, radius_km: float) -> list[tuple[str, float]]:
        """Keys whose point lies within ``radius_km`` (inclusive), with distances."""
        low, high = latitude_band(latitude, radius_km)
        hits: list[tuple[str, float]] = []
        for key, (lat, lon) in dict(self._points).items():
            if lat < low or lat > high:
                continue
            dist = haversine_km(latitude, longitude, lat, lon)
            if dist <= radius_km:
                hits.append((key, dist))
        return hits
