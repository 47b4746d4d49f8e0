"""Plain records passed between the SOS services and the API layer."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


class AlertStatus(str, enum.Enum):
    PENDING = "PENDING"
    PEERS_ALERTED = "PEERS_ALERTED"
    ESCALATED = "ESCALATED"
    RESOLVED = "RESOLVED"
    CANCELED = "CANCELED"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


ACTIVE_STATUSES = frozenset({AlertStatus.PENDING, AlertStatus.PEERS_ALERTED, AlertStatus.ESCALATED})

# Statuses the scheduled escalation may still move forward
ESCALATABLE_STATUSES = frozenset({AlertStatus.PENDING, AlertStatus.PEERS_ALERTED})


@dataclass(frozen=True)
class UserLocation:
    user_id: str
    latitude: float
    longitude: float
    last_updated: datetime
    online: bool = True


@dataclass(frozen=True)
class PeerNotification:
    peer_user_id: str
    distance_km: float
    notified_at: datetime


@dataclass(frozen=True)
class Alert:
    """Snapshot of an SOS alert. Stores hand out copies, never live state."""

    id: str
    user_id: str
    latitude: float
    longitude: float
    status: AlertStatus
    message: str
    created_at: datetime
    distance_from_border: float | None = None
    peers_notified: tuple[PeerNotification, ...] = ()
    escalated_at: datetime | None = None
    resolved_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status.is_active


@dataclass(frozen=True)
class Transition:
    """Outcome of a status-guarded transition.

    ``applied`` is False when the guard rejected the change (the alert was
    already in a terminal or incompatible state); ``alert`` is then the
    unchanged current snapshot.
    """

    alert: Alert
    previous_status: AlertStatus
    applied: bool

    @property
    def noop(self) -> bool:
        return not self.applied


@dataclass(frozen=True)
class Contact:
    id: str
    user_id: str
    name: str
    phone_number: str
    created_at: datetime
    relationship: str | None = None
    priority: int = 1


@dataclass(frozen=True)
class AlertSummary:
    """What the notification gateway is told about an alert."""

    alert_id: str
    user_id: str
    latitude: float
    longitude: float
    message: str
    status: AlertStatus
    created_at: datetime
    distance_from_border: float | None = None
    peers_notified: int = 0
    distance_km: float | None = None
    contacts: tuple[Contact, ...] = field(default=())

    @classmethod
    def from_alert(cls, alert: Alert, **extra) -> AlertSummary:
        return cls(
            alert_id=alert.id,
            user_id=alert.user_id,
            latitude=alert.latitude,
            longitude=alert.longitude,
            message=alert.message,
            status=alert.status,
            created_at=alert.created_at,
            distance_from_border=alert.distance_from_border,
            peers_notified=len(alert.peers_notified),
            **extra,
        )

    def to_payload(self) -> dict:
        return {
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "message": self.message,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "distance_from_border": self.distance_from_border,
            "peers_notified": self.peers_notified,
            "distance_km": self.distance_km,
            "contacts": [
                {
                    "name": c.name,
                    "phone_number": c.phone_number,
                    "relationship": c.relationship,
                    "priority": c.priority,
                }
                for c in self.contacts
            ],
        }
