"""Remote reconciliation feed.

Merges change notifications for tables and reservations into the local
board, in delivery order. Echoes of this client's own writes come through
here too, so merging must be idempotent.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, List
from zoneinfo import ZoneInfo

from tableboard.schemas.reservation import decode_reservation_row
from tableboard.schemas.table import decode_table_row
from tableboard.services.board import MergeReservation, MergeTable, TableBoard
from tableboard.store.base import (
    RESERVATIONS,
    TABLES,
    ChangeEvent,
    ChangeType,
    MalformedRowError,
    RowStore,
    Subscription,
)
from tableboard.timeutil import utc_now

LOGGER = logging.getLogger("reconciliation-feed")


class ReconciliationFeed:
    """Consumes the store's change streams and merges them into the board."""

    def __init__(
        self,
        board: TableBoard,
        store: RowStore,
        tz: ZoneInfo,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.board = board
        self.store = store
        self.tz = tz
        self.clock = clock
        self._subscriptions: List[Subscription] = []
        self._tasks: List[asyncio.Task] = []

    @property
    def subscribed(self) -> bool:
        return bool(self._subscriptions)

    def subscribe(self) -> None:
        """Open both change subscriptions; events queue until consumed."""
        if self._subscriptions:
            return
        self._subscriptions = [
            self.store.subscribe(TABLES),
            self.store.subscribe(RESERVATIONS),
        ]

    def start(self) -> None:
        """Consume both subscriptions in background tasks."""
        self.subscribe()
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._consume(subscription), name=f"feed-{subscription.collection}")
            for subscription in self._subscriptions
        ]

    async def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription.close()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        self._subscriptions = []

    def drain(self) -> int:
        """Merge every notification already delivered; returns how many were handled."""
        handled = 0
        for subscription in self._subscriptions:
            for event in subscription.pending():
                self.handle(event)
                handled += 1
        return handled

    async def _consume(self, subscription: Subscription) -> None:
        async for event in subscription:
            try:
                self.handle(event)
            except Exception:
                LOGGER.exception("Failed to merge %s notification for %s", event.event_type.value, subscription.collection)

    def handle(self, event: ChangeEvent) -> bool:
        """Merge one notification; malformed ones are logged and dropped."""
        try:
            if event.collection == TABLES:
                return self._handle_table(event)
            if event.collection == RESERVATIONS:
                return self._handle_reservation(event)
        except MalformedRowError as exc:
            LOGGER.warning("Dropping malformed %s notification: %s", event.event_type.value, exc)
            return False
        LOGGER.debug("Ignoring notification for collection %s", event.collection)
        return False

    def _row_id(self, event: ChangeEvent, collection: str) -> str:
        row = event.row
        if not row or not row.get("id"):
            raise MalformedRowError(collection, row, "missing id")
        return str(row["id"])

    def _handle_table(self, event: ChangeEvent) -> bool:
        table_id = self._row_id(event, TABLES)
        if event.event_type == ChangeType.DELETE:
            return bool(self.board.dispatch(MergeTable(ChangeType.DELETE, table_id)))
        table = decode_table_row(event.new)
        return bool(self.board.dispatch(MergeTable(event.event_type, table_id, table)))

    def _handle_reservation(self, event: ChangeEvent) -> bool:
        reservation_id = self._row_id(event, RESERVATIONS)
        if event.event_type == ChangeType.DELETE:
            return bool(self.board.dispatch(MergeReservation(ChangeType.DELETE, reservation_id)))
        reservation = decode_reservation_row(event.new, self.tz, self.clock())
        return bool(self.board.dispatch(MergeReservation(event.event_type, reservation_id, reservation)))
