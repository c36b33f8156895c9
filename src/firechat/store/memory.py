"""
In-Memory Store Adapter

This module provides an in-process implementation of the store contract.
It backs the test-suite and the demo, and doubles as the executable
description of the semantics the chat core expects from a real backend.

Architecture:
    - MemoryDatabase holds the shared tree, priorities and listeners
    - MemoryStore is one client connection to a database; it owns its
      on-disconnect registrations and its `.info/connected` state
    - Several MemoryStore connections may share one database, which is how
      multi-user scenarios are exercised

Usage:
    database = MemoryDatabase()
    alice = MemoryStore(database)
    await alice.reference("rooms/general").set({"name": "General"})
    alice.go_offline()   # fires and drops alice's on-disconnect writes
    alice.go_online()
"""

import copy
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..config import CONNECTED_PATH
from ..exceptions import PermissionDeniedError
from .base import (
    ABORT_TRANSACTION,
    CHILD_ADDED,
    CHILD_CHANGED,
    CHILD_REMOVED,
    EVENT_TYPES,
    VALUE,
    Snapshot,
    TransactionResult,
    is_server_timestamp,
    join_path,
    normalize_path,
)
from .pushid import PushIdGenerator

logger = logging.getLogger(__name__)

_KEEP_PRIORITY = object()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_under(path: str, prefix: str) -> bool:
    """Check whether path equals prefix or lies below it."""
    return not prefix or path == prefix or path.startswith(prefix + "/")


def _invoke(callback: Callable, arg: Any, path: str) -> None:
    """Run a listener callback, logging instead of raising."""
    try:
        callback(arg)
    except Exception:
        logger.exception(f"Listener callback at /{path} failed")


def _priority_sort_key(priority: Any) -> Tuple:
    if priority is None:
        return (0,)
    if isinstance(priority, (int, float)) and not isinstance(priority, bool):
        return (1, priority)
    return (2, str(priority))


def _prune(value: Any) -> Any:
    """Drop None children and empty containers, as the backend does."""
    if isinstance(value, dict):
        pruned = {}
        for key, child in value.items():
            child = _prune(child)
            if child is not None:
                pruned[str(key)] = child
        return pruned or None
    return value


def _resolve_server_values(value: Any, now: int) -> Any:
    if is_server_timestamp(value):
        return now
    if isinstance(value, dict):
        return {k: _resolve_server_values(v, now) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class QueryParams:
    """Ordering and bounds applied to the children of a location."""

    order_by_key: bool = False
    start_at: Optional[str] = None
    end_at: Optional[str] = None
    limit: Optional[int] = None

    @property
    def is_default(self) -> bool:
        return self == QueryParams()

    def apply(
        self, value: Any, priority_of: Callable[[str], Any]
    ) -> Dict[str, Any]:
        """Return the selected children of value, in query order."""
        if not isinstance(value, dict):
            return {}
        keys = list(value)
        if self.order_by_key:
            keys.sort()
        else:
            keys.sort(key=lambda k: (_priority_sort_key(priority_of(k)), k))
        if self.start_at is not None:
            keys = [k for k in keys if k >= self.start_at]
        if self.end_at is not None:
            keys = [k for k in keys if k <= self.end_at]
        if self.limit is not None:
            keys = keys[-self.limit:] if self.limit > 0 else []
        return {k: value[k] for k in keys}


class _Listener:
    """A registered subscription; also the Subscription handle."""

    def __init__(
        self,
        query: "MemoryQuery",
        event_type: str,
        callback: Callable[[Snapshot], None],
        cancel_callback: Optional[Callable[[Exception], None]],
    ):
        self.query = query
        self.event_type = event_type
        self.callback = callback
        self.cancel_callback = cancel_callback
        self.active = True
        self.view: Any = None

    @property
    def path(self) -> str:
        return self.query.path

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.query.store._forget_listener(self)

    def cancel(self, error: Exception) -> None:
        self.unsubscribe()
        if self.cancel_callback is not None:
            _invoke(self.cancel_callback, error, self.path)


class MemoryDatabase:
    """
    Shared data tree for one or more MemoryStore connections.

    Attributes:
        clock: Millisecond clock used for server timestamps and push keys
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self.clock = clock or _now_ms
        self._root: Any = None
        self._priorities: Dict[str, Any] = {}
        self._listeners: List[_Listener] = []
        self._denied: Set[str] = set()
        self._last_timestamp = 0

    def server_time(self) -> int:
        """Current server time; never moves backwards."""
        now = max(int(self.clock()), self._last_timestamp)
        self._last_timestamp = now
        return now

    # Access control

    def is_denied(self, path: str) -> bool:
        return any(_is_under(path, denied) for denied in self._denied)

    def check_access(self, path: str) -> None:
        if self.is_denied(path):
            raise PermissionDeniedError(path)

    def revoke(self, path: str) -> None:
        path = normalize_path(path)
        self._denied.add(path)
        for listener in list(self._listeners):
            if listener.active and _is_under(listener.path, path):
                logger.debug(f"Cancelling listener at /{listener.path}")
                listener.cancel(PermissionDeniedError(listener.path))

    def restore(self, path: str) -> None:
        self._denied.discard(normalize_path(path))

    # Reads

    def read(self, path: str) -> Any:
        node = self._root
        for part in path.split("/") if path else []:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return copy.deepcopy(node)

    def priority(self, path: str) -> Any:
        return self._priorities.get(path)

    def view_for(self, query: "MemoryQuery", event_type: str) -> Any:
        value = self.read(query.path)
        if event_type == VALUE and not isinstance(value, dict):
            return value if query.params.is_default else None
        children = query.params.apply(
            value, lambda key: self.priority(join_path(query.path, key))
        )
        if event_type == VALUE:
            return children or None
        return children

    # Writes

    def apply(self, changes: List[Tuple[str, Any, Any]]) -> None:
        """
        Apply (path, value, priority) writes atomically, then notify.

        Server timestamps in all values resolve to the same instant.
        """
        now = self.server_time()
        for path, value, priority in changes:
            self.check_access(path)
        for path, value, priority in changes:
            value = _prune(_resolve_server_values(copy.deepcopy(value), now))
            if priority is not _KEEP_PRIORITY:
                priority = _resolve_server_values(priority, now)
            self._write(path, value, priority)
        self._notify()

    def _write(self, path: str, value: Any, priority: Any) -> None:
        for known in list(self._priorities):
            if _is_under(known, path) and known != path:
                del self._priorities[known]
        if priority is not _KEEP_PRIORITY:
            if priority is None:
                self._priorities.pop(path, None)
            else:
                self._priorities[path] = priority
        if value is None:
            self._priorities.pop(path, None)

        if not path:
            self._root = value
            return

        parts = path.split("/")
        if value is None:
            self._delete(parts)
            return
        if not isinstance(self._root, dict):
            self._root = {}
        node = self._root
        for part in parts[:-1]:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value

    def _delete(self, parts: List[str]) -> None:
        trail = []
        node = self._root
        for part in parts[:-1]:
            if not isinstance(node, dict) or part not in node:
                return
            trail.append((node, part))
            node = node[part]
        if not isinstance(node, dict) or parts[-1] not in node:
            return
        del node[parts[-1]]
        # Remove parents left empty by the delete.
        while trail and not node:
            parent, part = trail.pop()
            del parent[part]
            node = parent
        if not self._root:
            self._root = None

    # Listeners

    def add_listener(self, listener: _Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: _Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            if listener.active:
                self._refresh(listener)

    def _refresh(self, listener: _Listener) -> None:
        old = listener.view
        new = self.view_for(listener.query, listener.event_type)
        listener.view = new
        query = listener.query

        if listener.event_type == VALUE:
            if new != old:
                _invoke(listener.callback, query._snapshot(new), listener.path)
            return

        old = old or {}
        if listener.event_type == CHILD_REMOVED:
            for key, value in old.items():
                if key not in new and listener.active:
                    _invoke(
                        listener.callback,
                        query._child_snapshot(key, value),
                        listener.path,
                    )
        elif listener.event_type == CHILD_ADDED:
            for key, value in new.items():
                if key not in old and listener.active:
                    _invoke(
                        listener.callback,
                        query._child_snapshot(key, value),
                        listener.path,
                    )
        elif listener.event_type == CHILD_CHANGED:
            for key, value in new.items():
                if key in old and old[key] != value and listener.active:
                    _invoke(
                        listener.callback,
                        query._child_snapshot(key, value),
                        listener.path,
                    )


class MemoryOnDisconnect:
    """On-disconnect writes for one location of one connection."""

    def __init__(self, store: "MemoryStore", path: str):
        self._store = store
        self._path = path

    async def set(self, value: Any) -> None:
        self._store.database.check_access(self._path)
        self._store._disconnect_writes[self._path] = copy.deepcopy(value)

    async def remove(self) -> None:
        await self.set(None)

    async def cancel(self) -> None:
        for path in list(self._store._disconnect_writes):
            if _is_under(path, self._path):
                del self._store._disconnect_writes[path]


class MemoryQuery:
    """Read side of a location in a MemoryStore."""

    def __init__(
        self,
        store: "MemoryStore",
        path: str,
        params: QueryParams = QueryParams(),
    ):
        self.store = store
        self._path = normalize_path(path)
        self.params = params

    @property
    def path(self) -> str:
        return self._path

    @property
    def key(self) -> Optional[str]:
        return self._path.rsplit("/", 1)[-1] if self._path else None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(/{self._path})"

    def __str__(self) -> str:
        return self._path

    def _query(self, **changes) -> "MemoryQuery":
        return MemoryQuery(self.store, self._path, replace(self.params, **changes))

    def order_by_key(self) -> "MemoryQuery":
        return self._query(order_by_key=True)

    def start_at(self, key: str) -> "MemoryQuery":
        return self._query(start_at=key)

    def end_at(self, key: str) -> "MemoryQuery":
        return self._query(end_at=key)

    def limit_to_last(self, limit: int) -> "MemoryQuery":
        if limit < 0:
            raise ValueError("limit must not be negative")
        return self._query(limit=limit)

    def _snapshot(self, value: Any) -> Snapshot:
        return Snapshot(
            key=self.key,
            value=copy.deepcopy(value),
            ref=MemoryReference(self.store, self._path),
            priority=self.store.database.priority(self._path),
        )

    def _child_snapshot(self, key: str, value: Any) -> Snapshot:
        path = join_path(self._path, key)
        return Snapshot(
            key=key,
            value=copy.deepcopy(value),
            ref=MemoryReference(self.store, path),
            priority=self.store.database.priority(path),
        )

    async def get(self) -> Snapshot:
        if self._path == CONNECTED_PATH:
            return self._snapshot(self.store.connected)
        self.store.database.check_access(self._path)
        return self._snapshot(self.store.database.view_for(self, VALUE))

    def on(
        self,
        event_type: str,
        callback: Callable[[Snapshot], None],
        cancel_callback: Optional[Callable[[Exception], None]] = None,
    ) -> _Listener:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        listener = _Listener(self, event_type, callback, cancel_callback)

        if self._path == CONNECTED_PATH:
            self.store._connected_listeners.append(listener)
            listener.view = self.store.connected
            _invoke(callback, self._snapshot(self.store.connected), self._path)
            return listener

        if self.store.database.is_denied(self._path):
            listener.active = False
            if cancel_callback is not None:
                _invoke(cancel_callback, PermissionDeniedError(self._path), self._path)
            return listener

        self.store._listeners.append(listener)
        self.store.database.add_listener(listener)
        # Deliver current state as if it had just arrived.
        listener.view = {} if event_type != VALUE else object()
        self.store.database._refresh(listener)
        return listener

    def off(self, event_type: Optional[str] = None) -> None:
        for listener in list(self.store._listeners) + list(
            self.store._connected_listeners
        ):
            if listener.path == self._path and (
                event_type is None or listener.event_type == event_type
            ):
                listener.unsubscribe()


class MemoryReference(MemoryQuery):
    """Writable location in a MemoryStore."""

    def child(self, path: str) -> "MemoryReference":
        return MemoryReference(self.store, join_path(self._path, path))

    def parent(self) -> Optional["MemoryReference"]:
        if not self._path:
            return None
        return MemoryReference(self.store, self._path.rpartition("/")[0])

    def root(self) -> "MemoryReference":
        return MemoryReference(self.store, "")

    def push(self) -> "MemoryReference":
        return self.child(self.store._push_ids.generate())

    async def set(self, value: Any) -> None:
        self.store.database.apply([(self._path, value, _KEEP_PRIORITY)])

    async def set_with_priority(self, value: Any, priority: Any) -> None:
        self.store.database.apply([(self._path, value, priority)])

    async def update(self, values: Dict[str, Any]) -> None:
        self.store.database.apply(
            [
                (join_path(self._path, key), value, _KEEP_PRIORITY)
                for key, value in values.items()
            ]
        )

    async def remove(self) -> None:
        await self.set(None)

    async def transaction(
        self, update_fn: Callable[[Any], Any]
    ) -> TransactionResult:
        database = self.store.database
        database.check_access(self._path)
        current = database.read(self._path)
        result = update_fn(copy.deepcopy(current))
        if result is ABORT_TRANSACTION:
            return TransactionResult(False, self._snapshot(current))
        database.apply([(self._path, result, _KEEP_PRIORITY)])
        return TransactionResult(True, self._snapshot(database.read(self._path)))

    def on_disconnect(self) -> MemoryOnDisconnect:
        return MemoryOnDisconnect(self.store, self._path)


class MemoryStore:
    """
    One client connection to a MemoryDatabase.

    Attributes:
        database: The shared database
        connected: Current value of `.info/connected`
    """

    def __init__(
        self,
        database: Optional[MemoryDatabase] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.database = database or MemoryDatabase(clock=clock)
        self.connected = True
        self._push_ids = PushIdGenerator(clock=self.database.clock)
        self._disconnect_writes: Dict[str, Any] = {}
        self._listeners: List[_Listener] = []
        self._connected_listeners: List[_Listener] = []

    def reference(self, path: str = "") -> MemoryReference:
        return MemoryReference(self, path)

    def go_offline(self) -> None:
        """Drop the connection; the server runs queued on-disconnect writes."""
        if not self.connected:
            return
        self.connected = False
        writes, self._disconnect_writes = self._disconnect_writes, {}
        if writes:
            logger.debug(f"Running {len(writes)} on-disconnect writes")
            self.database.apply(
                [(path, value, _KEEP_PRIORITY) for path, value in writes.items()]
            )
        self._notify_connected()

    def go_online(self) -> None:
        """Restore the connection."""
        if self.connected:
            return
        self.connected = True
        self._notify_connected()

    def revoke_access(self, path: str) -> None:
        """
        Deny reads and writes below path and cancel listeners there.

        Access rules live in the shared database, so the revocation applies
        to every connection, not only this one.
        """
        self.database.revoke(path)

    def restore_access(self, path: str) -> None:
        self.database.restore(path)

    @property
    def pending_disconnect_writes(self) -> Dict[str, Any]:
        """Copy of the on-disconnect writes queued by this connection."""
        return copy.deepcopy(self._disconnect_writes)

    def _notify_connected(self) -> None:
        for listener in list(self._connected_listeners):
            if listener.active:
                listener.view = self.connected
                _invoke(
                    listener.callback,
                    listener.query._snapshot(self.connected),
                    listener.path,
                )

    def _forget_listener(self, listener: _Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
        if listener in self._connected_listeners:
            self._connected_listeners.remove(listener)
        self.database.remove_listener(listener)
