"""Reservation book: unassigned reservations and their assignment to tables."""
from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Union
from zoneinfo import ZoneInfo

from tableboard.schemas.reservation import Reservation, decode_reservation_row, encode_reservation_row
from tableboard.schemas.table import TableAction, TableSnapshot, TableStatus, decode_table_row, encode_table_row
from tableboard.services.board import MergeReservation, MergeTable, TableBoard
from tableboard.services.notices import (
    ASSIGN_FAILED_NOTICE,
    PARTIAL_ASSIGN_NOTICE,
    WRITE_FAILED_NOTICE,
    Notifier,
    log_notice,
)
from tableboard.services.table_state import DEFAULT_PARTY_SIZE, transition
from tableboard.store.base import (
    RESERVATIONS,
    TABLES,
    ChangeType,
    MalformedRowError,
    RemoteWriteError,
    RowStore,
    StoreError,
    WriteOp,
)
from tableboard.timeutil import resolve_planned_time, utc_now

LOGGER = logging.getLogger("reservation-book")


class AssignmentOutcome(str, Enum):
    ASSIGNED = "assigned"
    RESERVATION_NOT_FOUND = "reservation_not_found"
    TABLE_NOT_FOUND = "table_not_found"
    TABLE_UNAVAILABLE = "table_unavailable"
    FAILED = "failed"
    PARTIAL = "partial"


class ReservationBook:
    """Add, remove and assign reservations against the shared store."""

    def __init__(
        self,
        board: TableBoard,
        store: RowStore,
        tz: ZoneInfo,
        notify: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.board = board
        self.store = store
        self.tz = tz
        self.notify = notify or log_notice
        self.clock = clock

    def entries(self) -> List[Reservation]:
        """Open reservations, earliest first."""
        return self.board.reservations()

    def candidate_tables(self, party_size: int) -> List[TableSnapshot]:
        """FREE tables that seat the party, smallest capacity first."""
        tables = [
            t for t in self.board.tables()
            if t.status == TableStatus.FREE and t.capacity >= party_size
        ]
        return sorted(tables, key=lambda t: (t.capacity, t.id))

    async def add(
        self,
        name: Optional[str],
        party_size: Optional[int],
        time: Union[str, datetime, None],
    ) -> Optional[Reservation]:
        """
        Book a reservation.

        Empty names, missing times and party sizes below one are ignored. "HH:MM" resolves against
        today in the venue timezone.

        Returns:
            The stored reservation, or None if nothing was booked
        """
        name = (name or "").strip()
        if not name or time is None or time == "":
            LOGGER.debug("Ignoring reservation without name or time")
            return None
        if party_size is None:
            party_size = DEFAULT_PARTY_SIZE
        elif party_size < 1:
            LOGGER.warning("Ignoring reservation for %s with party size %d", name, party_size)
            return None

        try:
            planned = resolve_planned_time(time, self.tz, self.clock())
        except ValueError:
            LOGGER.warning("Ignoring reservation for %s with invalid time %r", name, time)
            return None
        if planned is None:
            return None

        fields = encode_reservation_row(name, party_size, planned)
        try:
            row = await self.store.insert(RESERVATIONS, fields)
            reservation = decode_reservation_row(row, self.tz, self.clock())
        except MalformedRowError as exc:
            LOGGER.warning("Store returned malformed reservation: %s", exc)
            return None
        except StoreError as exc:
            LOGGER.warning("Failed to book reservation for %s: %s", name, exc)
            self.notify(WRITE_FAILED_NOTICE)
            return None

        self.board.dispatch(MergeReservation(ChangeType.INSERT, reservation.id, reservation))
        LOGGER.info("Booked %s (%d) for %s", reservation.name, reservation.party_size, reservation.time.isoformat())
        return reservation

    async def remove(self, reservation_id: str) -> bool:
        """Delete a reservation if it is in the book."""
        if self.board.get_reservation(reservation_id) is None:
            return False
        try:
            await self.store.delete(RESERVATIONS, {"id": reservation_id})
        except StoreError as exc:
            LOGGER.warning("Failed to remove reservation %s: %s", reservation_id, exc)
            self.notify(WRITE_FAILED_NOTICE)
            return False

        self.board.dispatch(MergeReservation(ChangeType.DELETE, reservation_id))
        return True

    async def assign(self, reservation_id: str, table_id: str) -> AssignmentOutcome:
        """
        Move a reservation onto a FREE table.

        The table becomes RESERVED with the party's name, size and planned
        time and the reservation leaves the book. Stores with transactions do
        both writes atomically; otherwise a failed delete is compensated by
        restoring the table, and a failed compensation yields PARTIAL.
        """
        reservation = self.board.get_reservation(reservation_id)
        if reservation is None:
            return AssignmentOutcome.RESERVATION_NOT_FOUND
        table = self.board.get_table(table_id)
        if table is None:
            return AssignmentOutcome.TABLE_NOT_FOUND

        reserved = transition(
            table,
            TableAction.RESERVE,
            now=self.clock(),
            name=reservation.name,
            party_size=reservation.party_size,
            reserved_for=reservation.time,
        )
        if reserved is table:
            LOGGER.info("Table %s is %s; cannot assign reservation %s", table_id, table.status.value, reservation_id)
            return AssignmentOutcome.TABLE_UNAVAILABLE

        table_fields = encode_table_row(reserved)
        if self.store.supports_transactions:
            outcome = await self._assign_atomically(reservation_id, table_id, table_fields)
        else:
            outcome = await self._assign_sequentially(reservation_id, table, table_fields)

        if outcome == AssignmentOutcome.ASSIGNED:
            LOGGER.info("Assigned reservation %s (%s) to table %s", reservation_id, reservation.name, table_id)
        return outcome

    async def _assign_atomically(self, reservation_id: str, table_id: str, table_fields: dict) -> AssignmentOutcome:
        try:
            table_rows, _ = await self.store.transaction([
                WriteOp.update(TABLES, {"id": table_id}, table_fields),
                WriteOp.delete(RESERVATIONS, {"id": reservation_id}),
            ])
            if not table_rows:
                raise RemoteWriteError(f"Table {table_id} not found in store")
        except StoreError as exc:
            LOGGER.warning("Assignment of %s to %s failed: %s", reservation_id, table_id, exc)
            self.notify(ASSIGN_FAILED_NOTICE)
            return AssignmentOutcome.FAILED

        self._merge_assignment(reservation_id, table_rows)
        return AssignmentOutcome.ASSIGNED

    async def _assign_sequentially(
        self,
        reservation_id: str,
        previous: TableSnapshot,
        table_fields: dict,
    ) -> AssignmentOutcome:
        try:
            table_rows = await self.store.update(TABLES, {"id": previous.id}, table_fields)
            if not table_rows:
                raise RemoteWriteError(f"Table {previous.id} not found in store")
        except StoreError as exc:
            LOGGER.warning("Assignment of %s to %s failed: %s", reservation_id, previous.id, exc)
            self.notify(ASSIGN_FAILED_NOTICE)
            return AssignmentOutcome.FAILED

        try:
            await self.store.delete(RESERVATIONS, {"id": reservation_id})
        except StoreError as delete_exc:
            LOGGER.warning(
                "Reservation %s not removed after reserving %s (%s); restoring table",
                reservation_id,
                previous.id,
                delete_exc,
            )
            try:
                await self.store.update(TABLES, {"id": previous.id}, encode_table_row(previous))
            except StoreError as restore_exc:
                LOGGER.error(
                    "Partial assignment: table %s reserved but reservation %s still booked; "
                    "restoring the table failed: %s",
                    previous.id,
                    reservation_id,
                    restore_exc,
                )
                self.notify(PARTIAL_ASSIGN_NOTICE)
                self._merge_tables(table_rows)
                return AssignmentOutcome.PARTIAL
            self.notify(ASSIGN_FAILED_NOTICE)
            return AssignmentOutcome.FAILED

        self._merge_assignment(reservation_id, table_rows)
        return AssignmentOutcome.ASSIGNED

    def _merge_tables(self, rows: list) -> None:
        for row in rows:
            try:
                table = decode_table_row(row)
            except MalformedRowError as exc:
                LOGGER.warning("Store returned malformed table: %s", exc)
                continue
            self.board.dispatch(MergeTable(ChangeType.UPDATE, table.id, table))

    def _merge_assignment(self, reservation_id: str, table_rows: list) -> None:
        self._merge_tables(table_rows)
        self.board.dispatch(MergeReservation(ChangeType.DELETE, reservation_id))
