from __future__ import annotations

from datetime import datetime
import uuid

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tableboard.database import Base


def _new_reservation_id() -> str:
    return uuid.uuid4().hex


class ReservationRecord(Base):
    """Unassigned reservations in the book."""

    __tablename__ = "reservations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_reservation_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<ReservationRecord(id={self.id}, name={self.name}, size={self.party_size})>"
