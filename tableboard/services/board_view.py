"""Display helpers for the floor board: filtering, ordering, totals, labels."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Union

from tableboard.schemas.table import TableSnapshot, TableStatus, TableTotals

# Busy tables first
STATUS_ORDER: List[TableStatus] = [
    TableStatus.SEATED,
    TableStatus.RESERVED,
    TableStatus.DIRTY,
    TableStatus.FREE,
]

ALL = "ALL"


def filter_tables(
    tables: Iterable[TableSnapshot],
    status: Union[TableStatus, str, None] = ALL,
    query: Optional[str] = None,
) -> List[TableSnapshot]:
    """
    Filter and order tables for display.

    ``status`` is a TableStatus or "ALL"; ``query`` matches case-insensitively
    against "{id} {name}". Result is ordered by STATUS_ORDER, then id.
    """
    wanted = None if status in (None, ALL) else TableStatus(status)
    needle = (query or "").strip().lower()

    selected = []
    for table in tables:
        if wanted is not None and table.status != wanted:
            continue
        if needle and needle not in f"{table.id} {table.name or ''}".lower():
            continue
        selected.append(table)

    return sorted(selected, key=lambda t: (STATUS_ORDER.index(t.status), t.id))


def totals(tables: Iterable[TableSnapshot]) -> TableTotals:
    counts = {status.value: 0 for status in TableStatus}
    total = 0
    for table in tables:
        counts[table.status.value] += 1
        total += 1
    return TableTotals(ALL=total, **counts)


def minutes_since(value: Optional[datetime], now: datetime) -> int:
    if value is None:
        return 0
    return int((now - value).total_seconds() // 60)


def since_label(value: Optional[datetime], now: datetime) -> str:
    """Elapsed time as "–", "<1m", "12m" or "1h 5m"."""
    if value is None:
        return "–"
    minutes = minutes_since(value, now)
    if minutes < 1:
        return "<1m"
    if minutes < 60:
        return f"{minutes}m"
    return f"{minutes // 60}h {minutes % 60}m"
