"""Notification gateways for peer fan-out and authority escalation.

Delivery is fire-and-forget from the coordinator's point of view: gateways
raise NotificationError on failure and the caller logs it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from smartsos.core.errors import NotificationError
from smartsos.services.records import AlertSummary

logger = logging.getLogger(__name__)

PEER_ALERT_EVENT = "sos.peer_alert"
ESCALATED_EVENT = "sos.escalated"


class NotificationGateway(ABC):
    @abstractmethod
    def notify_peer(self, peer_user_id: str, summary: AlertSummary) -> None: ...

    @abstractmethod
    def notify_authority(self, summary: AlertSummary) -> None: ...

    def close(self) -> None:
        pass


class LoggingNotificationGateway(NotificationGateway):
    """Writes notifications to the log. Used when no webhook is configured."""

    def notify_peer(self, peer_user_id: str, summary: AlertSummary) -> None:
        logger.info(
            "Peer alert: peer=%s alert=%s user=%s distance_km=%s",
            peer_user_id,
            summary.alert_id,
            summary.user_id,
            summary.distance_km,
        )

    def notify_authority(self, summary: AlertSummary) -> None:
        logger.warning(
            "Authority escalation: alert=%s user=%s at (%.6f, %.6f) contacts=%s",
            summary.alert_id,
            summary.user_id,
            summary.latitude,
            summary.longitude,
            len(summary.contacts),
        )


class WebhookNotificationGateway(NotificationGateway):
    """POSTs ``{"event": ..., "data": ...}`` envelopes to configured URLs.

    Either URL may be empty, in which case that path only logs.
    """

    def __init__(
        self,
        authority_url: str = "",
        peer_url: str = "",
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._authority_url = authority_url
        self._peer_url = peer_url
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._fallback = LoggingNotificationGateway()

    def notify_peer(self, peer_user_id: str, summary: AlertSummary) -> None:
        if not self._peer_url:
            self._fallback.notify_peer(peer_user_id, summary)
            return
        data = summary.to_payload()
        data["peer_user_id"] = peer_user_id
        self._post(self._peer_url, PEER_ALERT_EVENT, data)

    def notify_authority(self, summary: AlertSummary) -> None:
        if not self._authority_url:
            self._fallback.notify_authority(summary)
            return
        self._post(self._authority_url, ESCALATED_EVENT, summary.to_payload())

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _post(self, url: str, event: str, data: dict[str, Any]) -> None:
        try:
            response = self._client.post(url, json={"event": event, "data": data})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"{event} delivery to {url} failed: {exc}") from exc
