"""Emergency contact model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from smartsos.db.base import Base


class EmergencyContact(Base):
    __tablename__ = "emergency_contacts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    relationship: Mapped[str | None] = mapped_column(String(32), nullable=True)  # family | friend | authority | coast_guard
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # 1 = highest
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
