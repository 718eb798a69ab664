"""Row store interface consumed by the board.

The store is the source of truth shared by every client. It offers three
primitives: a request/response read, request/response writes and a
subscription to change events.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, FrozenSet, List, Mapping, Optional, Sequence, Set

LOGGER = logging.getLogger("row-store")

TABLES = "tables"
RESERVATIONS = "reservations"

Row = Dict[str, Any]


class StoreError(Exception):
    """Base exception for row store errors."""
    pass


class RemoteReadError(StoreError):
    """Raised when the store rejects or fails a read."""
    pass


class RemoteWriteError(StoreError):
    """Raised when the store rejects or errors on a write."""
    pass


class StoreNetworkError(RemoteWriteError):
    """Raised when a request never completes (connection lost, timeout)."""
    pass


class MalformedRowError(StoreError):
    """Raised when a row cannot be decoded into a board entity."""

    def __init__(self, collection: str, row: Optional[Mapping[str, Any]], reason: str) -> None:
        self.collection = collection
        self.row = dict(row) if row else None
        self.reason = reason
        super().__init__(f"{collection} row {self.row!r}: {reason}")


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


ALL_CHANGES: FrozenSet[ChangeType] = frozenset(ChangeType)


@dataclass(frozen=True)
class ChangeEvent:
    """A change notification. ``new`` is set for INSERT/UPDATE, ``old`` for UPDATE/DELETE."""

    event_type: ChangeType
    collection: str
    new: Optional[Row] = None
    old: Optional[Row] = None

    @property
    def row(self) -> Optional[Row]:
        return self.new or self.old


@dataclass(frozen=True)
class WriteOp:
    """One write inside a multi-row transaction."""

    kind: ChangeType
    collection: str
    match: Mapping[str, Any] = field(default_factory=dict)
    fields: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def insert(cls, collection: str, fields: Mapping[str, Any]) -> "WriteOp":
        return cls(ChangeType.INSERT, collection, {}, fields)

    @classmethod
    def update(cls, collection: str, match: Mapping[str, Any], fields: Mapping[str, Any]) -> "WriteOp":
        return cls(ChangeType.UPDATE, collection, match, fields)

    @classmethod
    def delete(cls, collection: str, match: Mapping[str, Any]) -> "WriteOp":
        return cls(ChangeType.DELETE, collection, match, {})


class Subscription:
    """Ordered stream of change events for one collection."""

    def __init__(self, collection: str, events: FrozenSet[ChangeType], broadcaster: "ChangeBroadcaster") -> None:
        self.collection = collection
        self.events = events
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue[Optional[ChangeEvent]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def wants(self, event: ChangeEvent) -> bool:
        return not self._closed and event.collection == self.collection and event.event_type in self.events

    def deliver(self, event: Optional[ChangeEvent]) -> None:
        self._queue.put_nowait(event)

    def pending(self) -> List[ChangeEvent]:
        """Take every event already delivered without waiting."""
        events = []
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return events
            if event is None:
                self._queue.put_nowait(None)
                return events
            events.append(event)

    async def next_event(self) -> Optional[ChangeEvent]:
        """Wait for the next event; None once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._broadcaster.unsubscribe(self)
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ChangeEvent]:
        while True:
            event = await self.next_event()
            if event is None:
                return
            yield event


class ChangeBroadcaster:
    """Fan-out of committed changes to subscriptions, in commit order."""

    def __init__(self) -> None:
        self._subscriptions: Set[Subscription] = set()

    def subscribe(self, collection: str, events: FrozenSet[ChangeType] = ALL_CHANGES) -> Subscription:
        subscription = Subscription(collection, frozenset(events), self)
        self._subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)

    def publish(self, events: Sequence[ChangeEvent]) -> None:
        for event in events:
            for subscription in list(self._subscriptions):
                if subscription.wants(event):
                    subscription.deliver(event)

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()


class RowStore:
    """Interface of the shared row store."""

    supports_transactions: bool = False

    async def select(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
    ) -> List[Row]:
        raise NotImplementedError

    async def insert(self, collection: str, fields: Mapping[str, Any]) -> Row:
        raise NotImplementedError

    async def update(self, collection: str, match: Mapping[str, Any], fields: Mapping[str, Any]) -> List[Row]:
        raise NotImplementedError

    async def delete(self, collection: str, match: Mapping[str, Any]) -> List[Row]:
        raise NotImplementedError

    async def transaction(self, ops: Sequence[WriteOp]) -> List[List[Row]]:
        raise RemoteWriteError("Store does not support multi-row transactions")

    def subscribe(self, collection: str, events: FrozenSet[ChangeType] = ALL_CHANGES) -> Subscription:
        raise NotImplementedError

    async def close(self) -> None:
        return None
