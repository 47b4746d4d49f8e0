"""SOS coordinator: end-to-end alert lifecycle."""

from __future__ import annotations

import logging
import math
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from smartsos.core.clock import Clock
from smartsos.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from smartsos.core.sos_policies import ESCALATION_DELAY_SECONDS, HISTORY_DEFAULT_LIMIT, PEER_RADIUS_KM
from smartsos.services.alert_store import AlertStore
from smartsos.services.contact_book import ContactBook
from smartsos.services.geo_index import haversine_km, validate_coordinates
from smartsos.services.location_registry import LocationRegistry
from smartsos.services.notifications import NotificationGateway
from smartsos.services.records import (
    ESCALATABLE_STATUSES,
    Alert,
    AlertStatus,
    AlertSummary,
    Contact,
    PeerNotification,
    Transition,
)
from smartsos.services.scheduler import EscalationScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerResult:
    alert: Alert
    peers_notified_count: int
    escalation_in_seconds: int


@dataclass(frozen=True)
class CloseResult:
    """Result of a cancel or resolve request.

    ``changed`` is False when the alert was already terminal and the request
    was a no-op. ``escalated`` means the alert reached Escalated before it was
    closed, so an authority notification was attempted. Whether that delivery
    succeeded is only in the log.
    """

    alert: Alert
    changed: bool
    previous_status: AlertStatus

    @property
    def escalated(self) -> bool:
        return self.alert.escalated_at is not None


@dataclass(frozen=True)
class StatusResult:
    has_active_alert: bool
    alert: Alert | None = None
    escalation_in_seconds: int | None = None


def compose_message(
    latitude: float,
    longitude: float,
    distance_from_border: float | None,
    when: datetime,
) -> str:
    """Default distress text embedding position and time."""
    lines = [
        "SOS ALERT",
        "User in distress!",
        f"Location: {latitude:.6f}, {longitude:.6f}",
    ]
    if distance_from_border is not None:
        lines.append(f"Distance from border: {distance_from_border:.1f}km")
    lines.append(f"Time: {when.isoformat()}")
    return "\n".join(lines)


class SosCoordinator:
    """The only component that talks to every other SOS service."""

    def __init__(
        self,
        alerts: AlertStore,
        locations: LocationRegistry,
        scheduler: EscalationScheduler,
        gateway: NotificationGateway,
        clock: Clock,
        contacts: ContactBook | None = None,
        peer_radius_km: float = PEER_RADIUS_KM,
        escalation_delay_seconds: float = ESCALATION_DELAY_SECONDS,
        executor: Executor | None = None,
    ) -> None:
        self._alerts = alerts
        self._locations = locations
        self._scheduler = scheduler
        self._gateway = gateway
        self._clock = clock
        self._contacts = contacts
        self._peer_radius_km = peer_radius_km
        self._escalation_delay = escalation_delay_seconds
        # None delivers notifications inline on the calling thread
        self._executor = executor

    @property
    def escalation_delay_seconds(self) -> float:
        return self._escalation_delay

    def trigger_sos(
        self,
        user_id: str,
        latitude: float | None,
        longitude: float | None,
        message: str | None = None,
        distance_from_border: float | None = None,
    ) -> TriggerResult:
        """Create an alert, fan it out to nearby peers and arm escalation.

        Raises InvalidArgumentError when the position is missing or invalid
        and ConflictError when the user already has an active alert.
        """
        if not user_id:
            raise InvalidArgumentError("user_id is required")
        if latitude is None or longitude is None:
            raise InvalidArgumentError("GPS location is required for SOS alerts")
        lat, lon = validate_coordinates(latitude, longitude)

        text = message or compose_message(lat, lon, distance_from_border, self._clock.now())
        try:
            alert = self._alerts.create_alert(user_id, lat, lon, text, distance_from_border)
        except ConflictError:
            logger.info("SOS rejected: user=%s already has an active alert", user_id)
            raise

        peers = self._find_peers(alert)
        alert = self._alerts.set_peers_notified(alert.id, peers)
        if not alert.is_active:
            logger.info("SOS closed during fan-out: alert=%s status=%s", alert.id, alert.status.value)
            return TriggerResult(alert=alert, peers_notified_count=0, escalation_in_seconds=0)
        for peer in peers:
            summary = AlertSummary.from_alert(alert, distance_km=peer.distance_km)
            self._dispatch(
                f"Peer notification to {peer.peer_user_id}",
                self._gateway.notify_peer,
                peer.peer_user_id,
                summary,
            )
        logger.info("SOS fanned out: alert=%s peers=%s", alert.id, len(peers))

        task = self._scheduler.arm(alert.id, self._escalation_delay, self.on_escalation_due)
        # A close that ran before arm had nothing to disarm
        latest = self._alerts.get_alert(alert.id)
        if latest is not None and not latest.is_active:
            self._scheduler.disarm(task)
        return TriggerResult(
            alert=alert,
            peers_notified_count=len(peers),
            escalation_in_seconds=math.ceil(self._escalation_delay),
        )

    def cancel_sos(self, user_id: str | None = None, alert_id: str | None = None) -> CloseResult:
        """Cancel by alert id if given, else the user's active alert."""
        alert = self._target(user_id, alert_id)
        return self._close(alert, self._alerts.cancel(alert.id))

    def resolve_sos(self, user_id: str | None = None, alert_id: str | None = None) -> CloseResult:
        """Mark the alert resolved (help arrived)."""
        alert = self._target(user_id, alert_id)
        return self._close(alert, self._alerts.resolve(alert.id))

    def get_status(self, user_id: str) -> StatusResult:
        alert = self._alerts.get_active_alert(user_id)
        if alert is None:
            return StatusResult(has_active_alert=False)
        return StatusResult(
            has_active_alert=True,
            alert=alert,
            escalation_in_seconds=self._remaining(alert),
        )

    def get_alert(self, alert_id: str) -> Alert:
        alert = self._alerts.get_alert(alert_id)
        if alert is None:
            raise NotFoundError(f"SOS alert {alert_id} not found")
        return alert

    def list_history(self, user_id: str, limit: int = HISTORY_DEFAULT_LIMIT) -> list[Alert]:
        return self._alerts.list_alerts(user_id, limit)

    def on_escalation_due(self, alert_id: str) -> None:
        """Scheduler callback. Only a real Escalated transition reaches the authority."""
        try:
            transition = self._alerts.escalate(alert_id)
        except NotFoundError:
            logger.warning("Escalation due for unknown alert %s", alert_id)
            return
        if transition.noop:
            logger.info(
                "Escalation skipped: alert=%s already %s",
                alert_id,
                transition.previous_status.value,
            )
            return
        summary = AlertSummary.from_alert(transition.alert, contacts=self._contacts_for(transition.alert.user_id))
        self._dispatch(f"Authority notification for {alert_id}", self._gateway.notify_authority, summary)

    def rearm_pending(self) -> int:
        """Arm escalation for stored alerts that have not escalated yet.

        Used after a restart with a persistent store; overdue alerts fire
        on the next timer tick.
        """
        alerts = self._alerts.list_escalatable()
        for alert in alerts:
            self._scheduler.arm(alert.id, self._remaining_seconds(alert), self.on_escalation_due)
        if alerts:
            logger.info("Re-armed escalation for %s stored alert(s)", len(alerts))
        return len(alerts)

    def _find_peers(self, alert: Alert) -> list[PeerNotification]:
        now = self._clock.now()
        nearby = self._locations.query_nearby(alert.latitude, alert.longitude, self._peer_radius_km)
        peers = [
            PeerNotification(
                peer_user_id=loc.user_id,
                distance_km=round(haversine_km(alert.latitude, alert.longitude, loc.latitude, loc.longitude), 3),
                notified_at=now,
            )
            for loc in nearby
            if loc.user_id != alert.user_id
        ]
        peers.sort(key=lambda p: p.distance_km)
        return peers

    def _target(self, user_id: str | None, alert_id: str | None) -> Alert:
        if not user_id and not alert_id:
            raise InvalidArgumentError("user_id or alert_id is required")
        if alert_id:
            alert = self._alerts.get_alert(alert_id)
            if alert is None or (user_id and alert.user_id != user_id):
                raise NotFoundError(f"SOS alert {alert_id} not found")
            return alert
        alert = self._alerts.get_active_alert(user_id)
        if alert is None:
            raise NotFoundError(f"No active SOS alert for user {user_id}")
        return alert

    def _close(self, alert: Alert, transition: Transition) -> CloseResult:
        self._scheduler.disarm(self._scheduler.task_for(alert.id))
        result = CloseResult(
            alert=transition.alert,
            changed=transition.applied,
            previous_status=transition.previous_status,
        )
        if result.changed:
            logger.info(
                "SOS closed: alert=%s %s -> %s",
                alert.id,
                transition.previous_status.value,
                transition.alert.status.value,
            )
            if result.escalated:
                logger.warning("Alert %s was closed after it had escalated", alert.id)
        return result

    def _remaining_seconds(self, alert: Alert) -> float:
        elapsed = (self._clock.now() - alert.created_at).total_seconds()
        return max(0.0, self._escalation_delay - elapsed)

    def _remaining(self, alert: Alert) -> int:
        if alert.status not in ESCALATABLE_STATUSES:
            return 0
        return math.ceil(self._remaining_seconds(alert))

    def _contacts_for(self, user_id: str) -> tuple[Contact, ...]:
        if self._contacts is None:
            return ()
        try:
            return tuple(self._contacts.list_contacts(user_id))
        except Exception:
            logger.exception("Could not load emergency contacts for user %s", user_id)
            return ()

    def _dispatch(self, description: str, fn: Callable[..., Any], *args: Any) -> None:
        if self._executor is None:
            self._deliver(description, fn, *args)
            return
        try:
            self._executor.submit(self._deliver, description, fn, *args)
        except RuntimeError:
            # Executor already shut down; deliver on this thread rather than drop
            self._deliver(description, fn, *args)

    @staticmethod
    def _deliver(description: str, fn: Callable[..., Any], *args: Any) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("%s failed", description)
