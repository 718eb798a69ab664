from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tableboard.database import Base


class TableRecord(Base):
    """Physical tables on the venue floor (fixed roster)."""

    __tablename__ = "tables"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Current status: FREE, RESERVED, SEATED, DIRTY
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="FREE")
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    party_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    since: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reserved_for: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<TableRecord(id={self.id}, status={self.status})>"
