"""SQLAlchemy-backed row store.

Rows cross the boundary as plain dicts with ISO-8601 timestamps. Every
committed write is published to subscribers in commit order, which gives
the same echo semantics as a hosted Postgres change feed.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Type

from sqlalchemy import DateTime, delete, select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tableboard.database import Base
from tableboard.models.reservation import ReservationRecord
from tableboard.models.table import TableRecord
from tableboard.store.base import (
    ALL_CHANGES,
    RESERVATIONS,
    TABLES,
    ChangeBroadcaster,
    ChangeEvent,
    ChangeType,
    RemoteReadError,
    RemoteWriteError,
    Row,
    RowStore,
    StoreNetworkError,
    Subscription,
    WriteOp,
)
from tableboard.timeutil import parse_timestamp, to_iso

LOGGER = logging.getLogger("row-store")

COLLECTIONS: Dict[str, Type[Base]] = {
    TABLES: TableRecord,
    RESERVATIONS: ReservationRecord,
}


def _model_for(collection: str, error: Type[Exception]) -> Type[Base]:
    model = COLLECTIONS.get(collection)
    if model is None:
        raise error(f"Unknown collection '{collection}'")
    return model


def _columns(model: Type[Base]) -> Dict[str, Any]:
    return {column.key: column for column in model.__table__.columns}


def _to_row(record: Base) -> Row:
    row: Row = {}
    for key in _columns(type(record)):
        value = getattr(record, key)
        if isinstance(value, datetime):
            value = to_iso(value)
        row[key] = value
    return row


def _to_column_values(model: Type[Base], fields: Mapping[str, Any]) -> Dict[str, Any]:
    columns = _columns(model)
    values: Dict[str, Any] = {}
    for key, value in fields.items():
        column = columns.get(key)
        if column is None:
            raise RemoteWriteError(f"Unknown column '{key}' on {model.__tablename__}")
        if isinstance(column.type, DateTime):
            try:
                value = parse_timestamp(value)
            except ValueError as exc:
                raise RemoteWriteError(f"Invalid timestamp for '{key}': {value!r}") from exc
        values[key] = value
    return values


def _where(model: Type[Base], match: Mapping[str, Any], error: Type[Exception]) -> list:
    columns = _columns(model)
    clauses = []
    for key, value in match.items():
        if key not in columns:
            raise error(f"Unknown column '{key}' on {model.__tablename__}")
        clauses.append(getattr(model, key) == value)
    return clauses


class SqlRowStore(RowStore):
    """Row store over an async SQLAlchemy engine with in-process change fan-out."""

    supports_transactions = True

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        broadcaster: Optional[ChangeBroadcaster] = None,
    ) -> None:
        self._session_factory = session_factory
        self._broadcaster = broadcaster or ChangeBroadcaster()

    @asynccontextmanager
    async def _guard(self, error: Type[Exception], action: str) -> AsyncGenerator[None, None]:
        try:
            yield
        except (RemoteReadError, RemoteWriteError):
            raise
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise StoreNetworkError(f"{action} failed: connection lost") from exc
            raise error(f"{action} failed: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise error(f"{action} failed: {exc}") from exc
        except (OSError, asyncio.TimeoutError) as exc:
            raise StoreNetworkError(f"{action} failed: {exc}") from exc

    async def select(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
    ) -> List[Row]:
        model = _model_for(collection, RemoteReadError)
        stmt = select(model).where(*_where(model, filters or {}, RemoteReadError))
        if order_by:
            if order_by not in _columns(model):
                raise RemoteReadError(f"Unknown column '{order_by}' on {collection}")
            stmt = stmt.order_by(getattr(model, order_by))

        async with self._guard(RemoteReadError, f"select {collection}"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [_to_row(record) for record in result.scalars().all()]

    async def insert(self, collection: str, fields: Mapping[str, Any]) -> Row:
        results = await self.transaction([WriteOp.insert(collection, fields)])
        return results[0][0]

    async def update(self, collection: str, match: Mapping[str, Any], fields: Mapping[str, Any]) -> List[Row]:
        results = await self.transaction([WriteOp.update(collection, match, fields)])
        return results[0]

    async def delete(self, collection: str, match: Mapping[str, Any]) -> List[Row]:
        results = await self.transaction([WriteOp.delete(collection, match)])
        return results[0]

    async def transaction(self, ops: Sequence[WriteOp]) -> List[List[Row]]:
        """Apply all writes in one database transaction; publish only after commit."""
        results: List[List[Row]] = []
        events: List[ChangeEvent] = []

        async with self._guard(RemoteWriteError, "write"):
            async with self._session_factory() as session:
                for op in ops:
                    rows, op_events = await self._apply(session, op)
                    results.append(rows)
                    events.extend(op_events)
                await session.commit()

        LOGGER.debug("Committed %d change(s)", len(events))
        self._broadcaster.publish(events)
        return results

    async def _apply(self, session: AsyncSession, op: WriteOp) -> Tuple[List[Row], List[ChangeEvent]]:
        model = _model_for(op.collection, RemoteWriteError)

        if op.kind == ChangeType.INSERT:
            record = model(**_to_column_values(model, op.fields))
            session.add(record)
            await session.flush()
            row = _to_row(record)
            return [row], [ChangeEvent(ChangeType.INSERT, op.collection, new=row)]

        if not op.match:
            raise RemoteWriteError(f"Refusing unfiltered {op.kind.value.lower()} on {op.collection}")
        clauses = _where(model, op.match, RemoteWriteError)

        if op.kind == ChangeType.UPDATE:
            values = _to_column_values(model, op.fields)
            result = await session.execute(select(model).where(*clauses))
            rows: List[Row] = []
            events: List[ChangeEvent] = []
            for record in result.scalars().all():
                old = _to_row(record)
                for key, value in values.items():
                    setattr(record, key, value)
                await session.flush()
                new = _to_row(record)
                rows.append(new)
                events.append(ChangeEvent(ChangeType.UPDATE, op.collection, new=new, old=old))
            return rows, events

        result = await session.execute(select(model).where(*clauses))
        old_rows = [_to_row(record) for record in result.scalars().all()]
        if old_rows:
            await session.execute(delete(model).where(*clauses))
        return old_rows, [ChangeEvent(ChangeType.DELETE, op.collection, old=row) for row in old_rows]

    def subscribe(self, collection: str, events: FrozenSet[ChangeType] = ALL_CHANGES) -> Subscription:
        _model_for(collection, RemoteReadError)
        return self._broadcaster.subscribe(collection, events)

    async def close(self) -> None:
        self._broadcaster.close()
