"""
Backend Store Contract

The chat core talks to a path-addressed realtime store through the
protocols below. Adapters implement them without inheriting from them:

    - Store: entry point, hands out references by path
    - Query: read-once and continuous subscriptions, optionally bounded
    - Reference: a Query that can also be written to
    - OnDisconnect: writes the server performs when this connection drops

Paths are slash-separated without leading or trailing slashes; the root
is the empty path.
"""

from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    Optional,
    Protocol,
)

# Placeholder resolved by the store to its own clock (milliseconds).
SERVER_TIMESTAMP: Dict[str, str] = {".sv": "timestamp"}

# Returned by a transaction update function to leave the node unchanged.
ABORT_TRANSACTION = object()

VALUE = "value"
CHILD_ADDED = "child_added"
CHILD_REMOVED = "child_removed"
CHILD_CHANGED = "child_changed"
EVENT_TYPES = (VALUE, CHILD_ADDED, CHILD_REMOVED, CHILD_CHANGED)


def normalize_path(path: str) -> str:
    """Strip redundant slashes from a store path."""
    return "/".join(part for part in str(path).split("/") if part)


def join_path(*parts: str) -> str:
    """Join path segments into a normalized store path."""
    return normalize_path("/".join(str(part) for part in parts))


def is_server_timestamp(value: Any) -> bool:
    """Check whether a value is the server timestamp placeholder."""
    return isinstance(value, dict) and value == SERVER_TIMESTAMP


@dataclass
class Snapshot:
    """
    Immutable view of the data at a path.

    Attributes:
        key: Last path segment (None for the root)
        value: Plain JSON-like value (None if the node is absent)
        ref: Reference to the location this snapshot was read from
        priority: Sort priority of the node, if any
    """

    key: Optional[str]
    value: Any
    ref: Any = field(default=None, repr=False)
    priority: Any = None

    def exists(self) -> bool:
        """Return True if there is data at this location."""
        return self.value is not None

    def child(self, key: str) -> "Snapshot":
        """Snapshot of a direct child."""
        value = self.value.get(key) if isinstance(self.value, dict) else None
        ref = self.ref.child(key) if self.ref is not None else None
        return Snapshot(key=key, value=value, ref=ref)

    def children(self) -> Iterator["Snapshot"]:
        """Iterate over child snapshots in query order."""
        if isinstance(self.value, dict):
            for key in self.value:
                yield self.child(key)


@dataclass
class TransactionResult:
    """Outcome of a transactional update."""

    committed: bool
    snapshot: Snapshot


class Subscription(Protocol):
    """Handle returned by Query.on()."""

    def unsubscribe(self) -> None:
        """Stop delivering events to the callback."""
        ...


class OnDisconnect(Protocol):
    """Writes queued on the server for when this connection drops."""

    async def set(self, value: Any) -> None:
        ...

    async def remove(self) -> None:
        ...

    async def cancel(self) -> None:
        """Cancel every queued write at this location."""
        ...


class Query(Protocol):
    """Read side of a location, optionally ordered and bounded."""

    @property
    def path(self) -> str:
        ...

    @property
    def key(self) -> Optional[str]:
        ...

    def order_by_key(self) -> "Query":
        ...

    def start_at(self, key: str) -> "Query":
        """Only include children whose key is >= key."""
        ...

    def end_at(self, key: str) -> "Query":
        """Only include children whose key is <= key."""
        ...

    def limit_to_last(self, limit: int) -> "Query":
        """Only include the last `limit` children in query order."""
        ...

    async def get(self) -> Snapshot:
        """Read the current value once."""
        ...

    def on(
        self,
        event_type: str,
        callback: Callable[[Snapshot], None],
        cancel_callback: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription:
        """
        Subscribe to value or child events.

        The current state is delivered immediately: one `value` event, or
        one `child_added` event per existing child. If the store later
        revokes access, the subscription ends and `cancel_callback` is
        invoked with the reason.
        """
        ...

    def off(self, event_type: Optional[str] = None) -> None:
        """Remove every subscription registered at this path."""
        ...


class Reference(Query, Protocol):
    """Writable location in the store."""

    def child(self, path: str) -> "Reference":
        ...

    def push(self) -> "Reference":
        """Reference to a new child with a generated, time-ordered key."""
        ...

    async def set(self, value: Any) -> None:
        ...

    async def set_with_priority(self, value: Any, priority: Any) -> None:
        ...

    async def update(self, values: Dict[str, Any]) -> None:
        """Write several children without touching the others."""
        ...

    async def remove(self) -> None:
        ...

    async def transaction(
        self, update_fn: Callable[[Any], Any]
    ) -> TransactionResult:
        """
        Atomically replace the value with update_fn(current).

        update_fn may return ABORT_TRANSACTION to leave the value as is,
        in which case the result is not committed.
        """
        ...

    def on_disconnect(self) -> OnDisconnect:
        ...


class Store(Protocol):
    """A connection to a realtime store."""

    def reference(self, path: str = "") -> Reference:
        ...
