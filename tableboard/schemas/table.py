from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tableboard.store.base import MalformedRowError
from tableboard.timeutil import parse_timestamp, to_iso

LOGGER = logging.getLogger("table-board")


class TableStatus(str, Enum):
    FREE = "FREE"
    RESERVED = "RESERVED"
    SEATED = "SEATED"
    DIRTY = "DIRTY"


class TableAction(str, Enum):
    SEAT_NOW = "SEAT_NOW"
    RESERVE = "RESERVE"
    CANCEL = "CANCEL"
    CHECKIN = "CHECKIN"
    CHECKOUT = "CHECKOUT"
    CLEAN = "CLEAN"


class TableSnapshot(BaseModel):
    """Immutable view of one table as the client currently believes it to be."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str = Field(..., min_length=1)
    capacity: int = Field(..., ge=1)
    status: TableStatus = TableStatus.FREE
    name: Optional[str] = None
    party_size: Optional[int] = Field(None, ge=1)
    since: Optional[datetime] = None
    reserved_for: Optional[datetime] = None
    note: Optional[str] = None

    @field_validator("since", "reserved_for", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @field_validator("name", "note", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TableRead(BaseModel):
    """Schema for reading a table through the API."""

    id: str
    capacity: int
    status: TableStatus
    name: Optional[str]
    party_size: Optional[int]
    since: Optional[datetime]
    reserved_for: Optional[datetime]
    note: Optional[str]
    since_label: str = "–"


class TableTotals(BaseModel):
    """Per-status table counts for the board footer."""

    ALL: int = 0
    FREE: int = 0
    RESERVED: int = 0
    SEATED: int = 0
    DIRTY: int = 0


def decode_table_row(row: Optional[Mapping[str, Any]]) -> TableSnapshot:
    """
    Decode a store row into a TableSnapshot.

    Raises:
        MalformedRowError: If the row has no identifier or fails validation
    """
    if not row or not row.get("id"):
        raise MalformedRowError("tables", row, "missing id")
    try:
        return TableSnapshot.model_validate(dict(row))
    except (ValidationError, ValueError, TypeError, OverflowError, OSError) as exc:
        raise MalformedRowError("tables", row, str(exc)) from exc


def decode_table_rows(rows: list[Mapping[str, Any]]) -> list[TableSnapshot]:
    """Decode a query result, dropping malformed rows."""
    tables = []
    for row in rows:
        try:
            tables.append(decode_table_row(row))
        except MalformedRowError as exc:
            LOGGER.warning("Dropping malformed table row: %s", exc)
    return tables


def encode_table_row(table: TableSnapshot, include_identity: bool = False) -> Dict[str, Any]:
    """
    Map a snapshot to the store's row shape.

    Cleared fields are written as explicit nulls. ``reserved_for`` only
    survives on RESERVED tables and the party only on RESERVED/SEATED ones.
    """
    has_party = table.status in (TableStatus.RESERVED, TableStatus.SEATED)
    row: Dict[str, Any] = {
        "status": table.status.value,
        "name": table.name if has_party else None,
        "party_size": table.party_size if has_party else None,
        "since": to_iso(table.since),
        "reserved_for": to_iso(table.reserved_for) if table.status == TableStatus.RESERVED else None,
        "note": table.note,
    }
    if include_identity:
        row = {"id": table.id, "capacity": table.capacity, **row}
    return row
