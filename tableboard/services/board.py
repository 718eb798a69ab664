"""Single-owner local copy of the board.

All local mutations are submitted as intents to ``TableBoard.dispatch``.
Handlers never suspend, so each intent is applied atomically with respect to
other coroutines; an intent dispatched while another is being applied (for
example from a listener) is queued and applied right after it.

Every table entry carries a version that advances on each local mutation.
Rollbacks name the version their optimistic write produced and are
discarded once a newer value has landed.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

from tableboard.schemas.reservation import Reservation
from tableboard.schemas.table import TableSnapshot
from tableboard.store.base import ChangeType

LOGGER = logging.getLogger("table-board")

BoardListener = Callable[["TableBoard"], None]


@dataclass(frozen=True)
class HydrateTables:
    tables: Sequence[TableSnapshot]


@dataclass(frozen=True)
class HydrateReservations:
    reservations: Sequence[Reservation]


@dataclass(frozen=True)
class OptimisticWrite:
    table: TableSnapshot


@dataclass(frozen=True)
class Rollback:
    table: TableSnapshot
    expected_version: int


@dataclass(frozen=True)
class MergeTable:
    event_type: ChangeType
    table_id: str
    table: Optional[TableSnapshot] = None


@dataclass(frozen=True)
class MergeReservation:
    event_type: ChangeType
    reservation_id: str
    reservation: Optional[Reservation] = None


@dataclass
class _TableEntry:
    snapshot: TableSnapshot
    version: int


class TableBoard:
    """Local tables and reservations, mutated only through intents."""

    def __init__(self) -> None:
        self._tables: Dict[str, _TableEntry] = {}
        self._reservations: Dict[str, Reservation] = {}
        self._versions = 0
        self._pending: Deque[Any] = deque()
        self._dispatching = False
        self._listeners: List[BoardListener] = []
        self._handlers: Dict[type, Callable[[Any], Any]] = {
            HydrateTables: self._hydrate_tables,
            HydrateReservations: self._hydrate_reservations,
            OptimisticWrite: self._optimistic_write,
            Rollback: self._rollback,
            MergeTable: self._merge_table,
            MergeReservation: self._merge_reservation,
        }

    # ---- reads -------------------------------------------------------

    @property
    def dispatching(self) -> bool:
        """True while an intent is being applied or listeners are being notified."""
        return self._dispatching

    def tables(self) -> List[TableSnapshot]:
        """Tables in canonical order (by identifier)."""
        return [self._tables[key].snapshot for key in sorted(self._tables)]

    def reservations(self) -> List[Reservation]:
        """Reservations in canonical order (by planned time, then id)."""
        return sorted(self._reservations.values(), key=lambda r: (r.time, r.id))

    def get_table(self, table_id: str) -> Optional[TableSnapshot]:
        entry = self._tables.get(table_id)
        return entry.snapshot if entry else None

    def table_version(self, table_id: str) -> Optional[int]:
        entry = self._tables.get(table_id)
        return entry.version if entry else None

    def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        return self._reservations.get(reservation_id)

    # ---- listeners ---------------------------------------------------

    def add_listener(self, listener: BoardListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: BoardListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ---- mutation ----------------------------------------------------

    def dispatch(self, intent: Any) -> Any:
        """
        Apply an intent and notify listeners.

        Returns the handler's result. An intent dispatched re-entrantly is
        queued behind the current one and its result is returned as None.
        """
        handler = self._handlers.get(type(intent))
        if handler is None:
            raise TypeError(f"Unknown board intent: {intent!r}")

        if self._dispatching:
            self._pending.append(intent)
            return None

        self._dispatching = True
        try:
            result = handler(intent)
            self._notify()
            while self._pending:
                queued = self._pending.popleft()
                self._handlers[type(queued)](queued)
                self._notify()
        finally:
            self._dispatching = False
        return result

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                LOGGER.exception("Board listener %r failed", listener)

    def _next_version(self) -> int:
        self._versions += 1
        return self._versions

    def _put_table(self, snapshot: TableSnapshot) -> int:
        version = self._next_version()
        self._tables[snapshot.id] = _TableEntry(snapshot, version)
        return version

    def _hydrate_tables(self, intent: HydrateTables) -> int:
        self._tables.clear()
        for table in intent.tables:
            self._put_table(table)
        return len(self._tables)

    def _hydrate_reservations(self, intent: HydrateReservations) -> int:
        self._reservations = {r.id: r for r in intent.reservations}
        return len(self._reservations)

    def _optimistic_write(self, intent: OptimisticWrite) -> Optional[int]:
        if intent.table.id not in self._tables:
            LOGGER.warning("Optimistic write for unknown table %s ignored", intent.table.id)
            return None
        return self._put_table(intent.table)

    def _rollback(self, intent: Rollback) -> bool:
        entry = self._tables.get(intent.table.id)
        if entry is None or entry.version != intent.expected_version:
            LOGGER.info(
                "Rollback of table %s discarded; newer state (v%s) already applied",
                intent.table.id,
                entry.version if entry else None,
            )
            return False
        self._put_table(intent.table)
        return True

    def _merge_table(self, intent: MergeTable) -> bool:
        if intent.event_type == ChangeType.DELETE:
            return self._tables.pop(intent.table_id, None) is not None
        if intent.table is None:
            return False
        self._put_table(intent.table)
        return True

    def _merge_reservation(self, intent: MergeReservation) -> bool:
        if intent.event_type == ChangeType.DELETE:
            return self._reservations.pop(intent.reservation_id, None) is not None
        if intent.reservation is None:
            return False
        self._reservations[intent.reservation.id] = intent.reservation
        return True
