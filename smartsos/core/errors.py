"""Error taxonomy shared by the SOS services."""

from __future__ import annotations


class SosError(Exception):
    """Base exception for SOS service errors."""


class InvalidArgumentError(SosError, ValueError):
    """Malformed input: missing or out-of-range coordinates, missing identifiers."""


class ConflictError(SosError):
    """A second active alert was requested for a user."""

    def __init__(self, message: str, alert_id: str | None = None) -> None:
        super().__init__(message)
        self.alert_id = alert_id


class NotFoundError(SosError):
    """Referenced alert, location or contact does not exist."""


class NotificationError(SosError):
    """Raised by a gateway when a notification could not be delivered."""
