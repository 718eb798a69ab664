"""
Tests for the optimistic mutation controller.

These tests simulate a host tapping table buttons while the network misbehaves:
- The local board changes before the store confirms
- Failed writes restore exactly what was there before
- Late failures never overwrite newer values from other stands
"""
from __future__ import annotations

import asyncio

import pytest

from tableboard.schemas.table import TableAction, TableStatus
from tableboard.services.board import MergeTable
from tableboard.services.board_session import BoardSession
from tableboard.services.mutation_controller import MutationOutcome
from tableboard.services.notices import NETWORK_FAILED_NOTICE, WRITE_FAILED_NOTICE
from tableboard.store.base import TABLES, ChangeType, RemoteWriteError, StoreNetworkError
from tableboard.timeutil import parse_timestamp

from tests.conftest import NOW, FlakyStore, Notices


class TestApply:
    """Tests for successful and skipped actions."""

    async def test_commits_and_persists(self, board_session: BoardSession, flaky_store: FlakyStore):
        outcome = await board_session.controller.apply(board_session.board.get_table("T1"), TableAction.SEAT_NOW)

        assert outcome == MutationOutcome.COMMITTED
        local = board_session.board.get_table("T1")
        assert local.status == TableStatus.SEATED
        assert local.since == NOW

        rows = await flaky_store.select(TABLES, filters={"id": "T1"})
        assert rows[0]["status"] == "SEATED"
        assert parse_timestamp(rows[0]["since"]) == NOW

    async def test_accepts_table_id(self, board_session: BoardSession):
        outcome = await board_session.controller.apply("T5", TableAction.CLEAN)
        assert outcome == MutationOutcome.COMMITTED
        assert board_session.board.get_table("T5").status == TableStatus.FREE

    async def test_guard_failure_skips_io(self, board_session: BoardSession, flaky_store: FlakyStore):
        """CHECKOUT on a FREE table does nothing and never calls the store."""
        before = board_session.board.get_table("T1")
        outcome = await board_session.controller.apply(before, TableAction.CHECKOUT)

        assert outcome == MutationOutcome.NOOP
        assert "update" not in flaky_store.calls
        assert board_session.board.get_table("T1") is before

    async def test_unknown_table_id(self, board_session: BoardSession, flaky_store: FlakyStore):
        assert await board_session.controller.apply("T42", TableAction.SEAT_NOW) == MutationOutcome.NOOP
        assert flaky_store.calls == ["select", "select"]

    async def test_optimistic_view_before_write_completes(self, board_session: BoardSession, flaky_store: FlakyStore):
        """The board shows the new status while the write is still in flight."""
        gate = asyncio.Event()
        original_update = flaky_store.update

        async def slow_update(*args, **kwargs):
            await gate.wait()
            return await original_update(*args, **kwargs)

        flaky_store.update = slow_update
        task = asyncio.create_task(board_session.controller.apply("T3", TableAction.SEAT_NOW))
        await asyncio.sleep(0)

        assert board_session.board.get_table("T3").status == TableStatus.SEATED
        gate.set()
        assert await task == MutationOutcome.COMMITTED

    async def test_echo_is_idempotent(self, board_session: BoardSession):
        """The store's echo of our own write leaves the board unchanged."""
        await board_session.controller.apply("T1", TableAction.SEAT_NOW)
        optimistic = board_session.board.tables()

        board_session.feed.drain()
        assert board_session.board.tables() == optimistic

    async def test_refused_inside_board_listener(self, board_session: BoardSession, flaky_store: FlakyStore):
        """A listener cannot start an action; no write is queued without a store write."""
        errors = []

        def listener(board) -> None:
            board.remove_listener(listener)
            pending = board_session.controller.apply("T3", TableAction.SEAT_NOW)
            with pytest.raises(RuntimeError):
                pending.send(None)
            errors.append("refused")

        board_session.board.add_listener(listener)
        await board_session.controller.apply("T1", TableAction.SEAT_NOW)

        assert errors == ["refused"]
        assert board_session.board.get_table("T3").status == TableStatus.FREE
        assert flaky_store.calls.count("update") == 1


class TestRollback:
    """Tests for failed writes."""

    @pytest.mark.parametrize(
        "table_id, action",
        [
            ("T1", TableAction.SEAT_NOW),
            ("T1", TableAction.RESERVE),
            ("T2", TableAction.CANCEL),
            ("T2", TableAction.CHECKIN),
            ("T4", TableAction.CHECKOUT),
            ("T5", TableAction.CLEAN),
        ],
    )
    async def test_rejected_write_restores_snapshot(
        self,
        board_session: BoardSession,
        flaky_store: FlakyStore,
        notices: Notices,
        table_id: str,
        action: TableAction,
    ):
        before = board_session.board.get_table(table_id)
        flaky_store.fail("update", RemoteWriteError("permission denied"))

        outcome = await board_session.controller.apply(before, action)

        assert outcome == MutationOutcome.ROLLED_BACK
        assert board_session.board.get_table(table_id) == before
        assert notices.messages == [WRITE_FAILED_NOTICE]

    async def test_network_failure_restores_snapshot(
        self, board_session: BoardSession, flaky_store: FlakyStore, notices: Notices
    ):
        before = board_session.board.get_table("T3")
        flaky_store.fail("update", StoreNetworkError("connection reset"))

        outcome = await board_session.controller.apply(before, TableAction.SEAT_NOW)

        assert outcome == MutationOutcome.ROLLED_BACK
        assert board_session.board.get_table("T3") == before
        assert notices.messages == [NETWORK_FAILED_NOTICE]

    async def test_raw_timeout_treated_as_network_failure(
        self, board_session: BoardSession, flaky_store: FlakyStore, notices: Notices
    ):
        flaky_store.fail("update", asyncio.TimeoutError())
        outcome = await board_session.controller.apply("T3", TableAction.SEAT_NOW)

        assert outcome == MutationOutcome.ROLLED_BACK
        assert notices.messages == [NETWORK_FAILED_NOTICE]

    async def test_missing_row_is_rejected_write(
        self, board_session: BoardSession, flaky_store: FlakyStore, notices: Notices
    ):
        """A table deleted in the store by someone else cannot be updated."""
        await flaky_store.inner.delete(TABLES, {"id": "T3"})
        before = board_session.board.get_table("T3")

        outcome = await board_session.controller.apply(before, TableAction.SEAT_NOW)

        assert outcome == MutationOutcome.ROLLED_BACK
        assert notices.messages == [WRITE_FAILED_NOTICE]

    async def test_no_automatic_retry(self, board_session: BoardSession, flaky_store: FlakyStore):
        flaky_store.fail("update", RemoteWriteError("nope"))
        await board_session.controller.apply("T1", TableAction.SEAT_NOW)
        assert flaky_store.calls.count("update") == 1

    async def test_late_failure_does_not_stomp_newer_value(
        self, board_session: BoardSession, flaky_store: FlakyStore, notices: Notices
    ):
        """Another stand's update lands while our write is failing; theirs stays."""
        gate = asyncio.Event()

        async def failing_update(*args, **kwargs):
            await gate.wait()
            raise StoreNetworkError("timeout")

        flaky_store.update = failing_update
        task = asyncio.create_task(board_session.controller.apply("T1", TableAction.SEAT_NOW))
        await asyncio.sleep(0)

        theirs = board_session.board.get_table("T1").model_copy(
            update={"status": TableStatus.RESERVED, "name": "Bar", "party_size": 2, "since": NOW}
        )
        board_session.board.dispatch(MergeTable(ChangeType.UPDATE, "T1", theirs))
        gate.set()

        assert await task == MutationOutcome.ROLLBACK_SUPERSEDED
        assert board_session.board.get_table("T1") == theirs
        assert notices.messages == [NETWORK_FAILED_NOTICE]
