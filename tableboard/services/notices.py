"""User-visible failure notices."""
from __future__ import annotations

import logging
from typing import Callable

LOGGER = logging.getLogger("table-board")

Notifier = Callable[[str], None]

WRITE_FAILED_NOTICE = "Konnte Status nicht speichern. Bitte erneut versuchen."
NETWORK_FAILED_NOTICE = "Netzwerkproblem – Änderung wurde zurückgesetzt."
ASSIGN_FAILED_NOTICE = "Reservierung konnte nicht zugewiesen werden. Bitte erneut versuchen."
PARTIAL_ASSIGN_NOTICE = "Zuweisung nur teilweise gespeichert. Tisch und Reservierungsbuch bitte prüfen."


def log_notice(message: str) -> None:
    """Default notifier: hosts without a UI only get the log line."""
    LOGGER.warning("Notice: %s", message)
