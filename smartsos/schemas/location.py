"""Location schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class LocationUpdate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    online: bool = True


class UserLocationResponse(BaseModel):
    user_id: str
    latitude: float
    longitude: float
    last_updated: datetime
    online: bool

    model_config = {"from_attributes": True}


class NearbyUserResponse(UserLocationResponse):
    distance_km: float
