# Board services
from tableboard.services.board import TableBoard
from tableboard.services.table_state import transition
from tableboard.services.mutation_controller import MutationOutcome, OptimisticMutationController
from tableboard.services.reservation_book import AssignmentOutcome, ReservationBook
from tableboard.services.reconciliation import ReconciliationFeed
from tableboard.services.expiry_sweeper import ExpirySweeper
from tableboard.services.board_session import BoardSession

__all__ = [
    "TableBoard",
    "transition",
    "MutationOutcome",
    "OptimisticMutationController",
    "AssignmentOutcome",
    "ReservationBook",
    "ReconciliationFeed",
    "ExpirySweeper",
    "BoardSession",
]
