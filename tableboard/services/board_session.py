"""One client's running board: hydration, change feed and expiry timer."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from tableboard.config import Settings, get_settings
from tableboard.schemas.reservation import decode_reservation_rows
from tableboard.schemas.table import decode_table_rows
from tableboard.services.board import HydrateReservations, HydrateTables, TableBoard
from tableboard.services.expiry_sweeper import ExpirySweeper
from tableboard.services.mutation_controller import OptimisticMutationController
from tableboard.services.notices import Notifier, log_notice
from tableboard.services.reconciliation import ReconciliationFeed
from tableboard.services.reservation_book import ReservationBook
from tableboard.store.base import RESERVATIONS, TABLES, RowStore, StoreError
from tableboard.timeutil import utc_now

LOGGER = logging.getLogger("table-board")


class BoardSession:
    """Wires the board, controller, book, feed and sweeper around one store."""

    def __init__(
        self,
        store: RowStore,
        settings: Optional[Settings] = None,
        notify: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.tz = ZoneInfo(self.settings.venue_timezone)
        self.clock = clock
        notify = notify or log_notice

        self.board = TableBoard()
        self.controller = OptimisticMutationController(self.board, store, notify=notify, clock=clock)
        self.book = ReservationBook(self.board, store, self.tz, notify=notify, clock=clock)
        self.feed = ReconciliationFeed(self.board, store, self.tz, clock=clock)
        self.sweeper = ExpirySweeper(
            self.board,
            store,
            interval_seconds=self.settings.expiry_interval_seconds,
            no_show_after=timedelta(minutes=self.settings.no_show_minutes),
            clock=clock,
        )

    async def hydrate(self) -> None:
        """Load both collections; a failed read keeps the current local view."""
        try:
            table_rows = await self.store.select(TABLES, order_by="id")
        except StoreError as exc:
            LOGGER.error("Loading tables failed: %s", exc)
        else:
            count = self.board.dispatch(HydrateTables(decode_table_rows(table_rows)))
            LOGGER.info("Loaded %d table(s)", count)

        try:
            reservation_rows = await self.store.select(RESERVATIONS, order_by="time")
        except StoreError as exc:
            LOGGER.error("Loading reservations failed: %s", exc)
        else:
            reservations = decode_reservation_rows(reservation_rows, self.tz, self.clock())
            count = self.board.dispatch(HydrateReservations(reservations))
            LOGGER.info("Loaded %d reservation(s)", count)

    async def start(self, run_sweeper: bool = True) -> None:
        # Subscribe first so nothing committed during hydration is missed;
        # replaying those events afterwards is idempotent.
        self.feed.subscribe()
        await self.hydrate()
        self.feed.drain()
        self.feed.start()
        if run_sweeper:
            self.sweeper.start()

    async def stop(self) -> None:
        await self.sweeper.stop()
        await self.feed.stop()
