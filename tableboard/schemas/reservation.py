from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tableboard.store.base import MalformedRowError
from tableboard.timeutil import resolve_planned_time, to_iso

LOGGER = logging.getLogger("table-board")


class Reservation(BaseModel):
    """An unassigned reservation waiting in the book."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    party_size: int = Field(..., ge=1)
    time: datetime


class ReservationCreate(BaseModel):
    """Schema for booking a reservation through the API."""

    name: str = Field(..., max_length=100)
    party_size: Optional[int] = Field(None, ge=1, le=50)
    time: str = Field(..., description='"HH:MM" today or an ISO-8601 timestamp')


class ReservationRead(BaseModel):
    """Schema for reading a reservation."""

    id: str
    name: str
    party_size: int
    time: datetime
    time_label: str


class AssignRequest(BaseModel):
    table_id: str = Field(..., min_length=1)


def decode_reservation_row(
    row: Optional[Mapping[str, Any]],
    tz: ZoneInfo,
    now: Optional[datetime] = None,
) -> Reservation:
    """
    Decode a store row into a Reservation, normalizing ``time`` to UTC.

    Raises:
        MalformedRowError: If the row has no identifier or fails validation
    """
    if not row or not row.get("id"):
        raise MalformedRowError("reservations", row, "missing id")
    try:
        planned = resolve_planned_time(row.get("time"), tz, now)
        if planned is None:
            raise ValueError("missing time")
        return Reservation(
            id=str(row["id"]),
            name=row.get("name"),
            party_size=row.get("party_size"),
            time=planned,
        )
    except (ValidationError, ValueError, TypeError, OverflowError, OSError) as exc:
        raise MalformedRowError("reservations", row, str(exc)) from exc


def decode_reservation_rows(
    rows: list[Mapping[str, Any]],
    tz: ZoneInfo,
    now: Optional[datetime] = None,
) -> list[Reservation]:
    """Decode a query result, dropping malformed rows."""
    reservations = []
    for row in rows:
        try:
            reservations.append(decode_reservation_row(row, tz, now))
        except MalformedRowError as exc:
            LOGGER.warning("Dropping malformed reservation row: %s", exc)
    return reservations


def encode_reservation_row(name: str, party_size: int, time: datetime) -> Dict[str, Any]:
    return {"name": name, "party_size": party_size, "time": to_iso(time)}
