"""Expiry sweeper for no-show reservations.

On a fixed interval, frees RESERVED tables whose planned arrival lies more
than the no-show threshold in the past. The sweeper writes to the store
only; the change reaches the local board through the reconciliation feed.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from tableboard.schemas.table import TableAction, TableSnapshot, TableStatus, encode_table_row
from tableboard.services.board import TableBoard
from tableboard.services.table_state import transition
from tableboard.store.base import TABLES, RowStore, StoreError
from tableboard.timeutil import utc_now

LOGGER = logging.getLogger("expiry-sweeper")

AUTO_CANCEL_NOTE = "Auto-Storno: Verspätung >30m"
DEFAULT_INTERVAL_SECONDS = 30
DEFAULT_NO_SHOW_MINUTES = 30


class ExpirySweeper:
    """Periodically cancels reservations whose party never arrived."""

    def __init__(
        self,
        board: TableBoard,
        store: RowStore,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        no_show_after: timedelta = timedelta(minutes=DEFAULT_NO_SHOW_MINUTES),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.board = board
        self.store = store
        self.interval_seconds = interval_seconds
        self.no_show_after = no_show_after
        self.clock = clock
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._sweeping = False

    def due_tables(self, now: Optional[datetime] = None) -> List[TableSnapshot]:
        """RESERVED tables whose planned arrival is at least the threshold ago."""
        now = now or self.clock()
        return [
            table
            for table in self.board.tables()
            if table.status == TableStatus.RESERVED
            and table.reserved_for is not None
            and now - table.reserved_for >= self.no_show_after
        ]

    async def sweep_once(self) -> List[str]:
        """
        Run one tick.

        Returns:
            Identifiers of the tables released in the store
        """
        if self._sweeping:
            LOGGER.debug("Previous sweep still running; skipping tick")
            return []

        self._sweeping = True
        released: List[str] = []
        try:
            now = self.clock()
            for table in self.due_tables(now):
                cancelled = transition(table, TableAction.CANCEL, now=now).model_copy(
                    update={"note": AUTO_CANCEL_NOTE}
                )
                try:
                    rows = await self.store.update(TABLES, {"id": table.id}, encode_table_row(cancelled))
                except StoreError as exc:
                    LOGGER.warning("Auto-cancel of table %s failed: %s", table.id, exc)
                    continue
                if rows:
                    LOGGER.info(
                        "Auto-cancelled table %s (%s), planned for %s",
                        table.id,
                        table.name,
                        table.reserved_for.isoformat(),
                    )
                    released.append(table.id)
        finally:
            self._sweeping = False
        return released

    async def run(self) -> None:
        while not self._stop_event.is_set():
            start_time = time.monotonic()
            try:
                await self.sweep_once()
            except Exception:
                LOGGER.exception("Expiry sweep failed")
            elapsed = time.monotonic() - start_time
            sleep_seconds = max(0.0, self.interval_seconds - elapsed)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_seconds)
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run(), name="expiry-sweeper")

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
