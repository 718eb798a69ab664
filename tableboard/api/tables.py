"""
REST API endpoints for the table board.
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from tableboard.api.deps import get_board_session
from tableboard.schemas.table import TableAction, TableRead, TableSnapshot, TableTotals
from tableboard.services.board_session import BoardSession
from tableboard.services.board_view import ALL, filter_tables, since_label, totals
from tableboard.services.mutation_controller import MutationOutcome

router = APIRouter(prefix="/api/v1", tags=["tables"])


def to_read(table: TableSnapshot, session: BoardSession) -> TableRead:
    return TableRead(
        **table.model_dump(),
        since_label=since_label(table.since, session.clock()),
    )


@router.get("/tables", response_model=List[TableRead])
async def list_tables(
    status: str = Query(ALL, description="ALL, FREE, RESERVED, SEATED or DIRTY"),
    q: Optional[str] = Query(None, description="Match against table id and party name"),
    session: BoardSession = Depends(get_board_session),
) -> List[TableRead]:
    """
    Get the board's tables, busiest first.

    Optionally filter by status or search text.
    """
    try:
        tables = filter_tables(session.board.tables(), status=status, query=q)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown status '{status}'")
    return [to_read(t, session) for t in tables]


@router.get("/tables/totals", response_model=TableTotals)
async def get_totals(session: BoardSession = Depends(get_board_session)) -> TableTotals:
    """Count tables per status."""
    return totals(session.board.tables())


@router.get("/tables/{table_id}", response_model=TableRead)
async def get_table(
    table_id: str,
    session: BoardSession = Depends(get_board_session),
) -> TableRead:
    """Get a single table by ID."""
    table = session.board.get_table(table_id)
    if table is None:
        raise HTTPException(status_code=404, detail="Table not found")
    return to_read(table, session)


@router.post("/tables/{table_id}/actions/{action}")
async def apply_action(
    table_id: str,
    action: TableAction,
    session: BoardSession = Depends(get_board_session),
) -> dict:
    """
    Apply a status action (SEAT_NOW, RESERVE, CANCEL, CHECKIN, CHECKOUT, CLEAN).

    Actions that do not fit the table's current status are ignored.
    """
    table = session.board.get_table(table_id)
    if table is None:
        raise HTTPException(status_code=404, detail="Table not found")

    outcome = await session.controller.apply(table, action)
    current = session.board.get_table(table_id)
    return {
        "outcome": outcome.value,
        "applied": outcome == MutationOutcome.COMMITTED,
        "table": to_read(current, session).model_dump(mode="json") if current else None,
    }
