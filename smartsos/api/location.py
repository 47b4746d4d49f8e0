"""Location API."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from smartsos.core.deps import get_locations, get_services
from smartsos.core.errors import InvalidArgumentError
from smartsos.core.sos_policies import MAX_QUERY_RADIUS_KM
from smartsos.schemas.location import LocationUpdate, NearbyUserResponse, UserLocationResponse
from smartsos.services.container import SosServices
from smartsos.services.geo_index import haversine_km
from smartsos.services.location_registry import LocationRegistry
from smartsos.services.records import UserLocation

router = APIRouter(prefix="/location", tags=["location"])


def _location_response(loc: UserLocation) -> UserLocationResponse:
    return UserLocationResponse(
        user_id=loc.user_id,
        latitude=loc.latitude,
        longitude=loc.longitude,
        last_updated=loc.last_updated,
        online=loc.online,
    )


@router.post("/update", response_model=UserLocationResponse)
def update_location(
    data: LocationUpdate,
    locations: LocationRegistry = Depends(get_locations),
):
    """Client reports its position; the latest report wins."""
    try:
        loc = locations.update_location(data.user_id, data.latitude, data.longitude, data.online)
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _location_response(loc)


@router.get("/nearby", response_model=list[NearbyUserResponse])
def nearby(
    lat: float = Query(ge=-90, le=90),
    lon: float = Query(ge=-180, le=180),
    radius_km: float | None = Query(default=None, gt=0, le=MAX_QUERY_RADIUS_KM),
    exclude_user_id: str | None = None,
    services: SosServices = Depends(get_services),
):
    """Online users within the radius, nearest first."""
    locations = services.locations
    radius = radius_km if radius_km is not None else services.settings.nearby_default_radius_km
    try:
        found = locations.query_nearby(lat, lon, radius)
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    results = [
        NearbyUserResponse(
            **_location_response(loc).model_dump(),
            distance_km=round(haversine_km(lat, lon, loc.latitude, loc.longitude), 3),
        )
        for loc in found
        if loc.user_id != exclude_user_id
    ]
    results.sort(key=lambda r: r.distance_km)
    return results


@router.get("/{user_id}", response_model=UserLocationResponse)
def get_location(
    user_id: str,
    locations: LocationRegistry = Depends(get_locations),
):
    loc = locations.get_location(user_id)
    if not loc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    return _location_response(loc)
