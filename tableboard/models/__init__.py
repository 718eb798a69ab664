from tableboard.models.table import TableRecord
from tableboard.models.reservation import ReservationRecord

__all__ = [
    "TableRecord",
    "ReservationRecord",
]
