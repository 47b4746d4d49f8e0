"""Peer notified for an SOS alert."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from smartsos.db.base import Base


class SosAlertPeer(Base):
    """Nearby peer notified during the alert's fan-out."""

    __tablename__ = "sos_alert_peers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    sos_alert_id: Mapped[str] = mapped_column(ForeignKey("sos_alerts.id", ondelete="CASCADE"), index=True, nullable=False)
    peer_user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    distance_km: Mapped[float] = mapped_column(Float, nullable=False)
    notified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
