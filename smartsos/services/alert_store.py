"""Alert store: authoritative lifecycle state for every SOS alert.

Every mutation for a user's alerts runs under that user's lock, and every
status change is guarded: it applies only when the current status is in the
transition's precondition set. Escalation and cancel both go through these
guards, so whichever reaches the lock first wins and the other observes a
no-op ``Transition`` instead of an error.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from smartsos.core.clock import Clock, as_utc
from smartsos.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from smartsos.core.locks import KeyedLock
from smartsos.core.sos_policies import HISTORY_DEFAULT_LIMIT
from smartsos.models.sos_alert import SosAlert
from smartsos.models.sos_alert_peer import SosAlertPeer
from smartsos.services.geo_index import validate_coordinates
from smartsos.services.records import (
    ACTIVE_STATUSES,
    ESCALATABLE_STATUSES,
    Alert,
    AlertStatus,
    PeerNotification,
    Transition,
)

logger = logging.getLogger(__name__)


class AlertStore(ABC):
    """Storage-agnostic alert lifecycle."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._locks = KeyedLock()

    def create_alert(
        self,
        user_id: str,
        latitude: float,
        longitude: float,
        message: str = "",
        distance_from_border: float | None = None,
    ) -> Alert:
        """Atomically check for an active alert and insert a new Pending one.

        Raises ConflictError when the user already has an active alert.
        """
        if not user_id:
            raise InvalidArgumentError("user_id is required")
        lat, lon = validate_coordinates(latitude, longitude)
        alert = Alert(
            id=str(uuid.uuid4()),
            user_id=user_id,
            latitude=lat,
            longitude=lon,
            status=AlertStatus.PENDING,
            message=message or "",
            created_at=self._clock.now(),
            distance_from_border=distance_from_border,
        )
        with self._locks.hold(user_id):
            existing = self._find_active(user_id)
            if existing is not None:
                raise ConflictError(
                    f"User {user_id} already has an active SOS alert",
                    alert_id=existing.id,
                )
            self._insert(alert)
        logger.info("Alert created: id=%s user=%s", alert.id, user_id)
        return alert

    def get_active_alert(self, user_id: str) -> Alert | None:
        return self._find_active(user_id)

    def set_peers_notified(self, alert_id: str, peers: Iterable[PeerNotification]) -> Alert:
        """Record fan-out results and move Pending to PeersAlerted.

        Already PeersAlerted is left as is. An alert closed in the meantime is
        returned unchanged and nothing is recorded, since no peer will be told.
        """
        peers = tuple(peers)
        user_id = self._require(alert_id).user_id
        with self._locks.hold(user_id):
            current = self._require(alert_id)
            if not current.is_active:
                return current
            status = current.status
            if status == AlertStatus.PENDING:
                status = AlertStatus.PEERS_ALERTED
            return self._record_peers(current, peers, status)

    def escalate(self, alert_id: str) -> Transition:
        return self._transition(alert_id, ESCALATABLE_STATUSES, AlertStatus.ESCALATED)

    def cancel(self, alert_id: str) -> Transition:
        return self._transition(alert_id, ACTIVE_STATUSES, AlertStatus.CANCELED)

    def resolve(self, alert_id: str) -> Transition:
        return self._transition(alert_id, ACTIVE_STATUSES, AlertStatus.RESOLVED)

    def _transition(
        self,
        alert_id: str,
        allowed: frozenset[AlertStatus],
        target: AlertStatus,
    ) -> Transition:
        user_id = self._require(alert_id).user_id
        with self._locks.hold(user_id):
            current = self._require(alert_id)
            if current.status not in allowed:
                logger.debug(
                    "Transition %s -> %s rejected for alert %s",
                    current.status.value,
                    target.value,
                    alert_id,
                )
                return Transition(alert=current, previous_status=current.status, applied=False)
            now = self._clock.now()
            if target == AlertStatus.ESCALATED:
                changed = replace(current, status=target, escalated_at=now)
            else:
                changed = replace(current, status=target, resolved_at=now)
            if not self._compare_and_set(current, changed):
                # Lost to a writer outside this process
                latest = self._require(alert_id)
                return Transition(alert=latest, previous_status=latest.status, applied=False)
        logger.info(
            "Alert %s: %s -> %s",
            alert_id,
            current.status.value,
            target.value,
        )
        return Transition(alert=changed, previous_status=current.status, applied=True)

    def _require(self, alert_id: str) -> Alert:
        alert = self.get_alert(alert_id)
        if alert is None:
            raise NotFoundError(f"SOS alert {alert_id} not found")
        return alert

    @abstractmethod
    def get_alert(self, alert_id: str) -> Alert | None: ...

    @abstractmethod
    def list_alerts(self, user_id: str, limit: int = HISTORY_DEFAULT_LIMIT) -> list[Alert]:
        """User's alerts of any status, newest first."""

    @abstractmethod
    def list_escalatable(self) -> list[Alert]:
        """Alerts whose escalation has not happened yet (Pending or PeersAlerted)."""

    @abstractmethod
    def _find_active(self, user_id: str) -> Alert | None: ...

    @abstractmethod
    def _insert(self, alert: Alert) -> None: ...

    @abstractmethod
    def _record_peers(self, alert: Alert, peers: tuple[PeerNotification, ...], status: AlertStatus) -> Alert: ...

    @abstractmethod
    def _compare_and_set(self, current: Alert, changed: Alert) -> bool:
        """Persist ``changed`` only if the stored status still equals ``current.status``."""


class InMemoryAlertStore(AlertStore):
    def __init__(self, clock: Clock) -> None:
        super().__init__(clock)
        self._alerts: dict[str, Alert] = {}
        # user_id -> id of that user's active alert
        self._active: dict[str, str] = {}

    def get_alert(self, alert_id: str) -> Alert | None:
        return self._alerts.get(alert_id)

    def list_alerts(self, user_id: str, limit: int = HISTORY_DEFAULT_LIMIT) -> list[Alert]:
        # Newest inserted first among equal timestamps
        mine = [a for a in reversed(list(self._alerts.values())) if a.user_id == user_id]
        mine.sort(key=lambda a: a.created_at, reverse=True)
        return mine[:limit]

    def list_escalatable(self) -> list[Alert]:
        return [a for a in list(self._alerts.values()) if a.status in ESCALATABLE_STATUSES]

    def _find_active(self, user_id: str) -> Alert | None:
        alert_id = self._active.get(user_id)
        return self._alerts.get(alert_id) if alert_id else None

    def _insert(self, alert: Alert) -> None:
        self._alerts[alert.id] = alert
        self._active[alert.user_id] = alert.id

    def _record_peers(self, alert: Alert, peers: tuple[PeerNotification, ...], status: AlertStatus) -> Alert:
        changed = replace(alert, status=status, peers_notified=alert.peers_notified + peers)
        self._alerts[alert.id] = changed
        return changed

    def _compare_and_set(self, current: Alert, changed: Alert) -> bool:
        if self._alerts[current.id].status != current.status:
            return False
        self._alerts[current.id] = changed
        if not changed.is_active and self._active.get(changed.user_id) == changed.id:
            del self._active[changed.user_id]
        return True


class SqlAlertStore(AlertStore):
    """Alerts in ``sos_alerts`` with fan-out rows in ``sos_alert_peers``.

    A partial unique index backs the single-active-alert rule across
    processes, and transitions are ``UPDATE ... WHERE status = :old``.
    """

    def __init__(self, clock: Clock, session_factory: sessionmaker) -> None:
        super().__init__(clock)
        self._session_factory = session_factory

    def get_alert(self, alert_id: str) -> Alert | None:
        with self._session_factory() as db:
            row = db.get(SosAlert, alert_id)
            return _to_alert(db, row) if row else None

    def list_alerts(self, user_id: str, limit: int = HISTORY_DEFAULT_LIMIT) -> list[Alert]:
        with self._session_factory() as db:
            rows = db.execute(
                select(SosAlert)
                .where(SosAlert.user_id == user_id)
                .order_by(SosAlert.created_at.desc())
                .limit(limit)
            ).scalars().all()
            return [_to_alert(db, r) for r in rows]

    def list_escalatable(self) -> list[Alert]:
        statuses = [s.value for s in ESCALATABLE_STATUSES]
        with self._session_factory() as db:
            rows = db.execute(select(SosAlert).where(SosAlert.status.in_(statuses))).scalars().all()
            return [_to_alert(db, r) for r in rows]

    def _find_active(self, user_id: str) -> Alert | None:
        statuses = [s.value for s in ACTIVE_STATUSES]
        with self._session_factory() as db:
            row = db.execute(
                select(SosAlert).where(SosAlert.user_id == user_id, SosAlert.status.in_(statuses))
            ).scalar_one_or_none()
            return _to_alert(db, row) if row else None

    def _insert(self, alert: Alert) -> None:
        with self._session_factory() as db:
            db.add(
                SosAlert(
                    id=alert.id,
                    user_id=alert.user_id,
                    latitude=alert.latitude,
                    longitude=alert.longitude,
                    status=alert.status.value,
                    message=alert.message,
                    distance_from_border=alert.distance_from_border,
                    created_at=alert.created_at,
                )
            )
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                existing = self._find_active(alert.user_id)
                raise ConflictError(
                    f"User {alert.user_id} already has an active SOS alert",
                    alert_id=existing.id if existing else None,
                ) from exc

    def _record_peers(self, alert: Alert, peers: tuple[PeerNotification, ...], status: AlertStatus) -> Alert:
        with self._session_factory() as db:
            for peer in peers:
                db.add(
                    SosAlertPeer(
                        sos_alert_id=alert.id,
                        peer_user_id=peer.peer_user_id,
                        distance_km=peer.distance_km,
                        notified_at=peer.notified_at,
                    )
                )
            if status != alert.status:
                db.execute(
                    update(SosAlert)
                    .where(SosAlert.id == alert.id, SosAlert.status == alert.status.value)
                    .values(status=status.value)
                )
            db.commit()
            return _to_alert(db, db.get(SosAlert, alert.id))

    def _compare_and_set(self, current: Alert, changed: Alert) -> bool:
        with self._session_factory() as db:
            result = db.execute(
                update(SosAlert)
                .where(SosAlert.id == current.id, SosAlert.status == current.status.value)
                .values(
                    status=changed.status.value,
                    escalated_at=changed.escalated_at,
                    resolved_at=changed.resolved_at,
                )
            )
            if result.rowcount != 1:
                db.rollback()
                return False
            db.commit()
            return True


def _to_alert(db: Session, row: SosAlert) -> Alert:
    peers = db.execute(
        select(SosAlertPeer).where(SosAlertPeer.sos_alert_id == row.id).order_by(SosAlertPeer.id)
    ).scalars().all()
    return Alert(
        id=row.id,
        user_id=row.user_id,
        latitude=row.latitude,
        longitude=row.longitude,
        status=AlertStatus(row.status),
        message=row.message,
        created_at=as_utc(row.created_at),
        distance_from_border=row.distance_from_border,
        peers_notified=tuple(
            PeerNotification(
                peer_user_id=p.peer_user_id,
                distance_km=p.distance_km,
                notified_at=as_utc(p.notified_at),
            )
            for p in peers
        ),
        escalated_at=as_utc(row.escalated_at),
        resolved_at=as_utc(row.resolved_at),
    )
