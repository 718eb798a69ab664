# API routes
from tableboard.api.tables import router as tables_router
from tableboard.api.reservations import router as reservations_router


__all__ = [
    "tables_router",
    "reservations_router",
]
