from tableboard.schemas.table import (
    TableAction,
    TableRead,
    TableSnapshot,
    TableStatus,
    TableTotals,
)
from tableboard.schemas.reservation import (
    AssignRequest,
    Reservation,
    ReservationCreate,
    ReservationRead,
)

__all__ = [
    "TableAction",
    "TableRead",
    "TableSnapshot",
    "TableStatus",
    "TableTotals",
    "AssignRequest",
    "Reservation",
    "ReservationCreate",
    "ReservationRead",
]
