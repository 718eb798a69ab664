from tableboard.store.base import (
    ALL_CHANGES,
    RESERVATIONS,
    TABLES,
    ChangeEvent,
    ChangeType,
    MalformedRowError,
    RemoteReadError,
    RemoteWriteError,
    RowStore,
    StoreError,
    StoreNetworkError,
    Subscription,
    WriteOp,
)

__all__ = [
    "ALL_CHANGES",
    "RESERVATIONS",
    "TABLES",
    "ChangeEvent",
    "ChangeType",
    "MalformedRowError",
    "RemoteReadError",
    "RemoteWriteError",
    "RowStore",
    "StoreError",
    "StoreNetworkError",
    "Subscription",
    "WriteOp",
]
