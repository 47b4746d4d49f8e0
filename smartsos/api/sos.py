"""SOS alerts API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from smartsos.core.deps import get_coordinator
from smartsos.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from smartsos.core.sos_policies import HISTORY_DEFAULT_LIMIT, HISTORY_MAX_LIMIT
from smartsos.schemas.sos import (
    PeerNotificationResponse,
    SosAlertResponse,
    SosCloseRequest,
    SosCloseResponse,
    SosStatusResponse,
    SosTriggerRequest,
    SosTriggerResponse,
)
from smartsos.services.coordinator import CloseResult, SosCoordinator
from smartsos.services.records import Alert

router = APIRouter(prefix="/sos", tags=["sos"])


def _alert_response(alert: Alert) -> SosAlertResponse:
    return SosAlertResponse(
        id=alert.id,
        user_id=alert.user_id,
        latitude=alert.latitude,
        longitude=alert.longitude,
        status=alert.status.value,
        message=alert.message,
        distance_from_border=alert.distance_from_border,
        peers_notified=[
            PeerNotificationResponse(
                peer_user_id=p.peer_user_id,
                distance_km=p.distance_km,
                notified_at=p.notified_at,
            )
            for p in alert.peers_notified
        ],
        created_at=alert.created_at,
        escalated_at=alert.escalated_at,
        resolved_at=alert.resolved_at,
    )


def _close_response(result: CloseResult) -> SosCloseResponse:
    return SosCloseResponse(
        success=True,
        alert_id=result.alert.id,
        status=result.alert.status.value,
        changed=result.changed,
        escalated=result.escalated,
    )


@router.post("/trigger", response_model=SosTriggerResponse)
def trigger(
    data: SosTriggerRequest,
    coordinator: SosCoordinator = Depends(get_coordinator),
):
    """Raise an SOS: alert nearby peers now, escalate to the authority later."""
    try:
        result = coordinator.trigger_sos(
            data.user_id,
            data.latitude,
            data.longitude,
            message=data.message,
            distance_from_border=data.distance_from_border,
        )
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ConflictError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": "An SOS alert is already active. Cancel it first.", "alert_id": e.alert_id},
        )
    return SosTriggerResponse(
        alert_id=result.alert.id,
        status=result.alert.status.value,
        peers_notified_count=result.peers_notified_count,
        escalation_in_seconds=result.escalation_in_seconds,
    )


@router.post("/cancel", response_model=SosCloseResponse)
def cancel(
    data: SosCloseRequest,
    coordinator: SosCoordinator = Depends(get_coordinator),
):
    """Cancel by alert id, or the user's active alert when only user_id is given."""
    try:
        return _close_response(coordinator.cancel_sos(user_id=data.user_id, alert_id=data.alert_id))
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/resolve", response_model=SosCloseResponse)
def resolve(
    data: SosCloseRequest,
    coordinator: SosCoordinator = Depends(get_coordinator),
):
    """Mark an alert resolved once help has arrived."""
    try:
        return _close_response(coordinator.resolve_sos(user_id=data.user_id, alert_id=data.alert_id))
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/status/{user_id}", response_model=SosStatusResponse)
def get_status(
    user_id: str,
    coordinator: SosCoordinator = Depends(get_coordinator),
):
    """Active alert for the user, if any, with seconds left before escalation."""
    result = coordinator.get_status(user_id)
    return SosStatusResponse(
        has_active_alert=result.has_active_alert,
        alert=_alert_response(result.alert) if result.alert else None,
        escalation_in_seconds=result.escalation_in_seconds,
    )


@router.get("/history/{user_id}", response_model=list[SosAlertResponse])
def history(
    user_id: str,
    limit: int = Query(default=HISTORY_DEFAULT_LIMIT, ge=1, le=HISTORY_MAX_LIMIT),
    coordinator: SosCoordinator = Depends(get_coordinator),
):
    """All of a user's alerts, newest first."""
    return [_alert_response(a) for a in coordinator.list_history(user_id, limit)]


@router.get("/alerts/{alert_id}", response_model=SosAlertResponse)
def get_alert(
    alert_id: str,
    coordinator: SosCoordinator = Depends(get_coordinator),
):
    try:
        return _alert_response(coordinator.get_alert(alert_id))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
