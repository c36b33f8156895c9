"""
Store Package

Adapters for the path-addressed realtime store the chat core runs on:
    - base: the contract (protocols, Snapshot, sentinels)
    - memory: in-process implementation for tests and demos
    - websocket: client for a realtime-store gateway
"""

from .base import (
    ABORT_TRANSACTION,
    CHILD_ADDED,
    CHILD_CHANGED,
    CHILD_REMOVED,
    SERVER_TIMESTAMP,
    VALUE,
    OnDisconnect,
    Query,
    Reference,
    Snapshot,
    Store,
    Subscription,
    TransactionResult,
    join_path,
    normalize_path,
)
from .memory import MemoryDatabase, MemoryStore
from .pushid import PushIdGenerator
from .websocket import WebSocketStore

__all__ = [
    "ABORT_TRANSACTION",
    "CHILD_ADDED",
    "CHILD_CHANGED",
    "CHILD_REMOVED",
    "SERVER_TIMESTAMP",
    "VALUE",
    "OnDisconnect",
    "Query",
    "Reference",
    "Snapshot",
    "Store",
    "Subscription",
    "TransactionResult",
    "join_path",
    "normalize_path",
    "MemoryDatabase",
    "MemoryStore",
    "PushIdGenerator",
    "WebSocketStore",
]
