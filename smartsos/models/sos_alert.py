"""SOS alert model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from smartsos.db.base import Base

_ACTIVE_CLAUSE = "status IN ('PENDING', 'PEERS_ALERTED', 'ESCALATED')"


class SosAlert(Base):
    """SOS alert raised by a user. Rows are never deleted."""

    __tablename__ = "sos_alerts"
    __table_args__ = (
        # At most one active alert per user, even across processes
        Index(
            "uq_sos_alerts_active_user",
            "user_id",
            unique=True,
            sqlite_where=text(_ACTIVE_CLAUSE),
            postgresql_where=text(_ACTIVE_CLAUSE),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")  # PENDING | PEERS_ALERTED | ESCALATED | RESOLVED | CANCELED
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    distance_from_border: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
