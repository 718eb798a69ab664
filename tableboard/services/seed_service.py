"""Provisioning of the fixed table roster."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from tableboard.schemas.table import TableStatus
from tableboard.store.base import TABLES, RowStore

LOGGER = logging.getLogger("table-board")


def default_roster(
    count: int,
    capacity: int,
    overrides: Optional[Dict[str, int]] = None,
) -> List[dict]:
    """Rows for tables T1..T{count}, all FREE."""
    overrides = overrides or {}
    roster = []
    for index in range(1, count + 1):
        table_id = f"T{index}"
        roster.append({
            "id": table_id,
            "capacity": overrides.get(table_id, capacity),
            "status": TableStatus.FREE.value,
            "name": None,
            "party_size": None,
            "since": None,
            "reserved_for": None,
            "note": None,
        })
    return roster


class SeedService:
    """Creates missing roster tables; never touches existing ones."""

    def __init__(self, store: RowStore) -> None:
        self.store = store

    async def ensure_default_tables(
        self,
        count: int,
        capacity: int,
        overrides: Optional[Dict[str, int]] = None,
    ) -> Dict[str, int]:
        existing = {row["id"] for row in await self.store.select(TABLES)}
        created = 0
        for row in default_roster(count, capacity, overrides):
            if row["id"] in existing:
                continue
            await self.store.insert(TABLES, row)
            created += 1

        if created:
            LOGGER.info("Provisioned %d table(s)", created)
        return {"tables_created": created, "tables_existing": len(existing)}
