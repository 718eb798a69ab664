"""Table status state machine.

Pure transition function over table snapshots. An action whose guard does
not hold returns the input snapshot itself, so out-of-order clicks are
harmless.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from tableboard.schemas.table import TableAction, TableSnapshot, TableStatus
from tableboard.timeutil import utc_now

CANCELLED_NOTE = "Storniert"
DEFAULT_RESERVATION_NAME = "Reservierung"
DEFAULT_PARTY_SIZE = 2

# action -> (required current status, next status)
TRANSITIONS: Dict[TableAction, tuple[TableStatus, TableStatus]] = {
    TableAction.SEAT_NOW: (TableStatus.FREE, TableStatus.SEATED),
    TableAction.RESERVE: (TableStatus.FREE, TableStatus.RESERVED),
    TableAction.CANCEL: (TableStatus.RESERVED, TableStatus.FREE),
    TableAction.CHECKIN: (TableStatus.RESERVED, TableStatus.SEATED),
    TableAction.CHECKOUT: (TableStatus.SEATED, TableStatus.DIRTY),
    TableAction.CLEAN: (TableStatus.DIRTY, TableStatus.FREE),
}


def guard_holds(table: TableSnapshot, action: TableAction) -> bool:
    """Check whether ``action`` applies to the table's current status."""
    required, _ = TRANSITIONS[action]
    return table.status == required


def transition(
    table: TableSnapshot,
    action: TableAction,
    now: Optional[datetime] = None,
    name: Optional[str] = None,
    party_size: Optional[int] = None,
    reserved_for: Optional[datetime] = None,
) -> TableSnapshot:
    """
    Compute the snapshot that results from applying ``action`` to ``table``.

    Args:
        table: Current snapshot
        action: Action to apply
        now: Transition instant (defaults to the current UTC time)
        name: Party name for RESERVE (defaults to the table's or "Reservierung")
        party_size: Party size for RESERVE (defaults to the table's or 2)
        reserved_for: Planned arrival for RESERVE

    Returns:
        A new snapshot, or ``table`` itself when the guard fails
    """
    action = TableAction(action)
    if not guard_holds(table, action):
        return table

    _, next_status = TRANSITIONS[action]
    stamp = now or utc_now()
    changes: Dict[str, Any] = {"status": next_status, "reserved_for": None}

    if action == TableAction.SEAT_NOW:
        changes.update(since=stamp, name=None, party_size=None, note=None)

    elif action == TableAction.RESERVE:
        changes.update(
            since=stamp,
            name=name or table.name or DEFAULT_RESERVATION_NAME,
            party_size=party_size or table.party_size or DEFAULT_PARTY_SIZE,
            reserved_for=reserved_for,
            note=None,
        )

    elif action == TableAction.CANCEL:
        changes.update(since=None, name=None, party_size=None, note=CANCELLED_NOTE)

    elif action == TableAction.CHECKIN:
        changes.update(since=stamp, note=None)

    elif action == TableAction.CHECKOUT:
        # Name and party size only live on RESERVED/SEATED tables.
        changes.update(since=stamp, name=None, party_size=None)

    elif action == TableAction.CLEAN:
        changes.update(since=None, note=None)

    return table.model_copy(update=changes)
