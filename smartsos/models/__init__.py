"""SQLAlchemy models."""

from __future__ import annotations

from smartsos.models.emergency_contact import EmergencyContact
from smartsos.models.sos_alert import SosAlert
from smartsos.models.sos_alert_peer import SosAlertPeer
from smartsos.models.user_location import TrackedLocation

__all__ = [
    "EmergencyContact",
    "SosAlert",
    "SosAlertPeer",
    "TrackedLocation",
]
