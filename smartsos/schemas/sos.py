"""SOS alert schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class SosTriggerRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    # Optional here so a missing GPS fix is reported as 400, not 422
    latitude: float | None = None
    longitude: float | None = None
    message: str | None = Field(default=None, max_length=2000)
    distance_from_border: float | None = Field(default=None, description="Opaque client-side context, km")


class SosCloseRequest(BaseModel):
    user_id: str | None = None
    alert_id: str | None = None

    @model_validator(mode="after")
    def require_target(self) -> "SosCloseRequest":
        if not self.user_id and not self.alert_id:
            raise ValueError("user_id or alert_id is required")
        return self


class PeerNotificationResponse(BaseModel):
    peer_user_id: str
    distance_km: float
    notified_at: datetime

    model_config = {"from_attributes": True}


class SosAlertResponse(BaseModel):
    id: str
    user_id: str
    latitude: float
    longitude: float
    status: str
    message: str
    distance_from_border: float | None
    peers_notified: list[PeerNotificationResponse]
    created_at: datetime
    escalated_at: datetime | None
    resolved_at: datetime | None

    model_config = {"from_attributes": True}


class SosTriggerResponse(BaseModel):
    alert_id: str
    status: str
    peers_notified_count: int
    escalation_in_seconds: int


class SosCloseResponse(BaseModel):
    success: bool
    alert_id: str
    status: str
    changed: bool = Field(description="False when the alert was already closed")
    escalated: bool = Field(description="Alert had escalated and an authority notification was attempted")


class SosStatusResponse(BaseModel):
    has_active_alert: bool
    alert: SosAlertResponse | None = None
    escalation_in_seconds: int | None = None
