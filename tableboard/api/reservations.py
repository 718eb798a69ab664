"""
REST API endpoints for the reservation book.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from tableboard.api.deps import get_board_session
from tableboard.api.tables import to_read
from tableboard.schemas.reservation import AssignRequest, Reservation, ReservationCreate, ReservationRead
from tableboard.schemas.table import TableRead
from tableboard.services.board_session import BoardSession
from tableboard.services.reservation_book import AssignmentOutcome
from tableboard.timeutil import format_clock

router = APIRouter(prefix="/api/v1/reservations", tags=["reservations"])

_ASSIGN_STATUS = {
    AssignmentOutcome.ASSIGNED: 200,
    AssignmentOutcome.RESERVATION_NOT_FOUND: 404,
    AssignmentOutcome.TABLE_NOT_FOUND: 404,
    AssignmentOutcome.TABLE_UNAVAILABLE: 409,
    AssignmentOutcome.FAILED: 502,
    AssignmentOutcome.PARTIAL: 502,
}


def _to_read(reservation: Reservation, session: BoardSession) -> ReservationRead:
    return ReservationRead(
        **reservation.model_dump(),
        time_label=format_clock(reservation.time, session.tz),
    )


@router.get("", response_model=List[ReservationRead])
async def list_reservations(session: BoardSession = Depends(get_board_session)) -> List[ReservationRead]:
    """Get open reservations, earliest first."""
    return [_to_read(r, session) for r in session.book.entries()]


@router.post("", response_model=ReservationRead, status_code=201)
async def add_reservation(
    data: ReservationCreate,
    session: BoardSession = Depends(get_board_session),
) -> ReservationRead:
    """Book a reservation."""
    reservation = await session.book.add(data.name, data.party_size, data.time)
    if reservation is None:
        raise HTTPException(status_code=422, detail="Reservation needs a name and a valid time")
    return _to_read(reservation, session)


@router.delete("/{reservation_id}", status_code=204)
async def remove_reservation(
    reservation_id: str,
    session: BoardSession = Depends(get_board_session),
) -> None:
    """Remove a reservation from the book."""
    if not await session.book.remove(reservation_id):
        raise HTTPException(status_code=404, detail="Reservation not removed")


@router.get("/{reservation_id}/candidates", response_model=List[TableRead])
async def list_candidates(
    reservation_id: str,
    session: BoardSession = Depends(get_board_session),
) -> List[TableRead]:
    """FREE tables that fit the party, smallest first."""
    reservation = session.board.get_reservation(reservation_id)
    if reservation is None:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return [to_read(t, session) for t in session.book.candidate_tables(reservation.party_size)]


@router.post("/{reservation_id}/assign")
async def assign_reservation(
    reservation_id: str,
    data: AssignRequest,
    session: BoardSession = Depends(get_board_session),
) -> dict:
    """Assign a reservation to a FREE table."""
    outcome = await session.book.assign(reservation_id, data.table_id)
    status_code = _ASSIGN_STATUS[outcome]
    if status_code != 200:
        raise HTTPException(status_code=status_code, detail=outcome.value)
    table = session.board.get_table(data.table_id)
    return {
        "outcome": outcome.value,
        "table": to_read(table, session).model_dump(mode="json") if table else None,
    }
