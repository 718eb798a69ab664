"""Optimistic mutation controller.

Applies a state-machine transition to the local board first, then persists
it. A failed write restores the pre-transition snapshot unless a newer value
reached the table in the meantime.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Union

from tableboard.schemas.table import TableAction, TableSnapshot, encode_table_row
from tableboard.services.board import OptimisticWrite, Rollback, TableBoard
from tableboard.services.notices import NETWORK_FAILED_NOTICE, WRITE_FAILED_NOTICE, Notifier, log_notice
from tableboard.services.table_state import transition
from tableboard.store.base import TABLES, RemoteWriteError, RowStore, StoreError, StoreNetworkError
from tableboard.timeutil import utc_now

LOGGER = logging.getLogger("table-board")


class MutationOutcome(str, Enum):
    NOOP = "noop"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_SUPERSEDED = "rollback_superseded"


class OptimisticMutationController:
    """Local-first table transitions with rollback on failed writes."""

    def __init__(
        self,
        board: TableBoard,
        store: RowStore,
        notify: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.board = board
        self.store = store
        self.notify = notify or log_notice
        self.clock = clock

    async def apply(
        self,
        table: Union[TableSnapshot, str],
        action: TableAction,
        name: Optional[str] = None,
        party_size: Optional[int] = None,
        reserved_for: Optional[datetime] = None,
    ) -> MutationOutcome:
        """
        Apply ``action`` to a table optimistically and persist it.

        Args:
            table: Snapshot the user acted on, or its identifier
            action: State machine action
            name, party_size, reserved_for: RESERVE payload

        Returns:
            What happened to the local view

        Raises:
            RuntimeError: If called from a board listener, where the optimistic
                write would be queued without a store write behind it
        """
        if self.board.dispatching:
            raise RuntimeError("apply() must not run inside a board listener")

        if isinstance(table, str):
            current = self.board.get_table(table)
            if current is None:
                LOGGER.warning("Action %s on unknown table %s ignored", action, table)
                return MutationOutcome.NOOP
            table = current

        action = TableAction(action)
        next_table = transition(
            table,
            action,
            now=self.clock(),
            name=name,
            party_size=party_size,
            reserved_for=reserved_for,
        )
        if next_table is table:
            LOGGER.debug("Action %s not applicable to table %s (%s)", action.value, table.id, table.status.value)
            return MutationOutcome.NOOP

        version = self.board.dispatch(OptimisticWrite(next_table))

        try:
            rows = await self.store.update(TABLES, {"id": table.id}, encode_table_row(next_table))
            if not rows:
                raise RemoteWriteError(f"Table {table.id} not found in store")
        except (StoreNetworkError, OSError, asyncio.TimeoutError) as exc:
            LOGGER.warning("Network failure writing table %s (%s): %s", table.id, action.value, exc)
            return self._roll_back(table, version, NETWORK_FAILED_NOTICE)
        except StoreError as exc:
            LOGGER.warning("Store rejected table %s (%s): %s", table.id, action.value, exc)
            return self._roll_back(table, version, WRITE_FAILED_NOTICE)

        LOGGER.info("Table %s: %s -> %s", table.id, table.status.value, next_table.status.value)
        return MutationOutcome.COMMITTED

    def _roll_back(self, previous: TableSnapshot, version: int, notice: str) -> MutationOutcome:
        restored = self.board.dispatch(Rollback(previous, expected_version=version))
        self.notify(notice)
        if restored:
            return MutationOutcome.ROLLED_BACK
        return MutationOutcome.ROLLBACK_SUPERSEDED
