"""Location registry: freshest known position and online flag per user."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from smartsos.core.clock import Clock, as_utc
from smartsos.core.errors import InvalidArgumentError
from smartsos.core.locks import KeyedLock
from smartsos.models.user_location import TrackedLocation
from smartsos.services.geo_index import (
    GeoIndex,
    haversine_km,
    latitude_band,
    validate_coordinates,
    validate_radius,
)
from smartsos.services.records import UserLocation

logger = logging.getLogger(__name__)


class LocationRegistry(ABC):
    """Owns per-user location records. Callers only read through queries."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._locks = KeyedLock()

    def update_location(
        self,
        user_id: str,
        latitude: float,
        longitude: float,
        online: bool = True,
    ) -> UserLocation:
        """Upsert the user's position; the last write wins."""
        if not user_id:
            raise InvalidArgumentError("user_id is required")
        lat, lon = validate_coordinates(latitude, longitude)
        location = UserLocation(
            user_id=user_id,
            latitude=lat,
            longitude=lon,
            last_updated=self._clock.now(),
            online=bool(online),
        )
        with self._locks.hold(user_id):
            self._save(location)
        logger.debug("Location updated: user=%s online=%s", user_id, location.online)
        return location

    def query_nearby(self, latitude: float, longitude: float, radius_km: float) -> list[UserLocation]:
        """Online users within ``radius_km`` of the point. Order is unspecified."""
        lat, lon = validate_coordinates(latitude, longitude)
        return self._online_within(lat, lon, validate_radius(radius_km))

    @abstractmethod
    def get_location(self, user_id: str) -> UserLocation | None: ...

    @abstractmethod
    def _save(self, location: UserLocation) -> None: ...

    @abstractmethod
    def _online_within(self, latitude: float, longitude: float, radius_km: float) -> list[UserLocation]: ...


class InMemoryLocationRegistry(LocationRegistry):
    """Records in a dict; only online users are kept in the geo index."""

    def __init__(self, clock: Clock) -> None:
        super().__init__(clock)
        self._records: dict[str, UserLocation] = {}
        self._index = GeoIndex()

    def get_location(self, user_id: str) -> UserLocation | None:
        return self._records.get(user_id)

    def _save(self, location: UserLocation) -> None:
        self._records[location.user_id] = location
        if location.online:
            self._index.upsert(location.user_id, location.latitude, location.longitude)
        else:
            self._index.remove(location.user_id)

    def _online_within(self, latitude: float, longitude: float, radius_km: float) -> list[UserLocation]:
        found = []
        for user_id, _ in self._index.within(latitude, longitude, radius_km):
            record = self._records.get(user_id)
            if record is not None and record.online:
                found.append(record)
        return found


class SqlLocationRegistry(LocationRegistry):
    """Records in the ``user_locations`` table.

    Nearby queries narrow candidates with an indexed latitude band in SQL and
    apply the exact haversine check in Python.
    """

    def __init__(self, clock: Clock, session_factory: sessionmaker) -> None:
        super().__init__(clock)
        self._session_factory = session_factory

    def get_location(self, user_id: str) -> UserLocation | None:
        with self._session_factory() as db:
            row = db.execute(
                select(TrackedLocation).where(TrackedLocation.user_id == user_id)
            ).scalar_one_or_none()
            return _to_location(row) if row else None

    def _save(self, location: UserLocation) -> None:
        with self._session_factory() as db:
            row = db.execute(
                select(TrackedLocation).where(TrackedLocation.user_id == location.user_id)
            ).scalar_one_or_none()
            if row is None:
                row = TrackedLocation(user_id=location.user_id)
                db.add(row)
            row.latitude = location.latitude
            row.longitude = location.longitude
            row.is_online = location.online
            row.last_updated = location.last_updated
            try:
                db.commit()
            except IntegrityError:
                # Another process inserted this user first; overwrite its row
                db.rollback()
                row = db.execute(
                    select(TrackedLocation).where(TrackedLocation.user_id == location.user_id)
                ).scalar_one()
                row.latitude = location.latitude
                row.longitude = location.longitude
                row.is_online = location.online
                row.last_updated = location.last_updated
                db.commit()

    def _online_within(self, latitude: float, longitude: float, radius_km: float) -> list[UserLocation]:
        low, high = latitude_band(latitude, radius_km)
        with self._session_factory() as db:
            rows = db.execute(
                select(TrackedLocation).where(
                    TrackedLocation.is_online.is_(True),
                    TrackedLocation.latitude >= low,
                    TrackedLocation.latitude <= high,
                )
            ).scalars().all()
            return [
                _to_location(r)
                for r in rows
                if haversine_km(latitude, longitude, r.latitude, r.longitude) <= radius_km
            ]


def _to_location(row: TrackedLocation) -> UserLocation:
    return UserLocation(
        user_id=row.user_id,
        latitude=row.latitude,
        longitude=row.longitude,
        last_updated=as_utc(row.last_updated),
        online=row.is_online,
    )
