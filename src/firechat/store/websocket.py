"""
WebSocket Store Adapter

This module provides a store adapter that talks to a realtime-store
gateway over a WebSocket connection.

Message Format:
    Requests and responses are JSON objects:
    {
        "type": "get" | "set" | "update" | "compare_and_set" | ...,
        "request_id": 7,
        "data": { ... operation-specific data ... }
    }

    The gateway answers each request with a "response" or "error" frame
    carrying the same request_id, and pushes "event" and "cancel" frames
    for active subscriptions.

Architecture:
    - Supports dependency injection for the network layer (for testability)
    - One receive loop task dispatches responses to pending futures and
      subscription events to their callbacks
    - `.info/connected` is tracked locally from the connection state
    - Subscriptions are replayed after a reconnect
"""

import asyncio
import copy
import json
import logging
from typing import Any, Callable, Dict, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed

from ..config import CONNECTED_PATH
from ..exceptions import PermissionDeniedError, StoreConnectionError, StoreError
from .base import (
    ABORT_TRANSACTION,
    EVENT_TYPES,
    VALUE,
    Snapshot,
    TransactionResult,
    join_path,
    normalize_path,
)
from .pushid import PushIdGenerator

logger = logging.getLogger(__name__)

# Compare-and-set attempts before a transaction gives up
MAX_TRANSACTION_ATTEMPTS = 25


def _invoke(callback: Callable, arg: Any, path: str) -> None:
    """Run a subscription callback, logging instead of raising."""
    try:
        callback(arg)
    except Exception:
        logger.exception(f"Subscription callback at /{path} failed")


class _RemoteSubscription:
    """Subscription registered with the gateway."""

    def __init__(
        self,
        subscription_id: int,
        query: "WebSocketQuery",
        event_type: str,
        callback: Callable[[Snapshot], None],
        cancel_callback: Optional[Callable[[Exception], None]],
    ):
        self.subscription_id = subscription_id
        self.query = query
        self.event_type = event_type
        self.callback = callback
        self.cancel_callback = cancel_callback
        self.active = True

    @property
    def path(self) -> str:
        return self.query.path

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "path": self.query.path,
            "event": self.event_type,
            "query": self.query.query_dict(),
        }

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.query.store._drop_subscription(self)


class WebSocketOnDisconnect:
    """On-disconnect writes registered with the gateway."""

    def __init__(self, store: "WebSocketStore", path: str):
        self._store = store
        self._path = path

    async def set(self, value: Any) -> None:
        await self._store._request(
            "on_disconnect_set", {"path": self._path, "value": value}
        )

    async def remove(self) -> None:
        await self.set(None)

    async def cancel(self) -> None:
        await self._store._request("on_disconnect_cancel", {"path": self._path})


class WebSocketQuery:
    """Read side of a location served by the gateway."""

    def __init__(
        self,
        store: "WebSocketStore",
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ):
        self.store = store
        self._path = normalize_path(path)
        self._params = dict(params or {})

    @property
    def path(self) -> str:
        return self._path

    @property
    def key(self) -> Optional[str]:
        return self._path.rsplit("/", 1)[-1] if self._path else None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(/{self._path})"

    def query_dict(self) -> Dict[str, Any]:
        return dict(self._params)

    def _query(self, **changes) -> "WebSocketQuery":
        params = dict(self._params)
        params.update(changes)
        return WebSocketQuery(self.store, self._path, params)

    def order_by_key(self) -> "WebSocketQuery":
        return self._query(order_by="key")

    def start_at(self, key: str) -> "WebSocketQuery":
        return self._query(start_at=key)

    def end_at(self, key: str) -> "WebSocketQuery":
        return self._query(end_at=key)

    def limit_to_last(self, limit: int) -> "WebSocketQuery":
        if limit < 0:
            raise ValueError("limit must not be negative")
        return self._query(limit_to_last=limit)

    def _snapshot(self, key: Optional[str], value: Any, priority: Any = None) -> Snapshot:
        if key is None:
            ref = WebSocketReference(self.store, self._path)
            key = self.key
        else:
            ref = WebSocketReference(self.store, join_path(self._path, key))
        return Snapshot(key=key, value=value, ref=ref, priority=priority)

    async def get(self) -> Snapshot:
        if self._path == CONNECTED_PATH:
            return self._snapshot(None, self.store.is_connected)
        data = await self.store._request(
            "get", {"path": self._path, "query": self.query_dict()}
        )
        return self._snapshot(None, data.get("value"), data.get("priority"))

    def on(
        self,
        event_type: str,
        callback: Callable[[Snapshot], None],
        cancel_callback: Optional[Callable[[Exception], None]] = None,
    ) -> _RemoteSubscription:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        subscription = _RemoteSubscription(
            self.store._next_id(), self, event_type, callback, cancel_callback
        )
        if self._path == CONNECTED_PATH:
            self.store._connected_subscriptions.append(subscription)
            _invoke(callback, self._snapshot(None, self.store.is_connected), self._path)
            return subscription

        self.store._subscriptions[subscription.subscription_id] = subscription
        if self.store.is_connected:
            self.store._spawn(
                self.store._request("subscribe", subscription.to_dict())
            )
        return subscription

    def off(self, event_type: Optional[str] = None) -> None:
        subscriptions = list(self.store._subscriptions.values())
        subscriptions += self.store._connected_subscriptions
        for subscription in subscriptions:
            if subscription.path == self._path and (
                event_type is None or subscription.event_type == event_type
            ):
                subscription.unsubscribe()


class WebSocketReference(WebSocketQuery):
    """Writable location served by the gateway."""

    def child(self, path: str) -> "WebSocketReference":
        return WebSocketReference(self.store, join_path(self._path, path))

    def push(self) -> "WebSocketReference":
        return self.child(self.store._push_ids.generate())

    async def set(self, value: Any) -> None:
        await self.store._request("set", {"path": self._path, "value": value})

    async def set_with_priority(self, value: Any, priority: Any) -> None:
        await self.store._request(
            "set",
            {"path": self._path, "value": value, "priority": priority},
        )

    async def update(self, values: Dict[str, Any]) -> None:
        await self.store._request(
            "update", {"path": self._path, "values": values}
        )

    async def remove(self) -> None:
        await self.set(None)

    async def transaction(
        self, update_fn: Callable[[Any], Any]
    ) -> TransactionResult:
        """
        Optimistic transaction built on the gateway's compare-and-set.

        Raises:
            StoreError: If the value kept changing under us
        """
        snapshot = await self.get()
        for _ in range(MAX_TRANSACTION_ATTEMPTS):
            result = update_fn(copy.deepcopy(snapshot.value))
            if result is ABORT_TRANSACTION:
                return TransactionResult(False, snapshot)
            data = await self.store._request(
                "compare_and_set",
                {"path": self._path, "expected": snapshot.value, "value": result},
            )
            snapshot = self._snapshot(None, data.get("value"))
            if data.get("committed"):
                return TransactionResult(True, snapshot)
            logger.debug(f"Transaction at /{self._path} lost a race, retrying")

        logger.error(
            f"Transaction at /{self._path} gave up after "
            f"{MAX_TRANSACTION_ATTEMPTS} attempts"
        )
        raise StoreError(f"Transaction at /{self._path} did not commit")

    def on_disconnect(self) -> WebSocketOnDisconnect:
        return WebSocketOnDisconnect(self.store, self._path)


class WebSocketStore:
    """
    Store adapter for a realtime-store gateway reached over WebSocket.

    Attributes:
        url: WebSocket URL of the gateway (e.g., ws://localhost:8765)
        websocket: Active WebSocket connection (None if not connected)
    """

    def __init__(
        self,
        url: str,
        websocket_factory: Optional[Callable] = None,
    ):
        """
        Initialize the store.

        Args:
            url: WebSocket URL of the gateway
            websocket_factory: Optional factory for creating WebSocket
                             connections (for dependency injection/testing)
        """
        self.url = url
        self.websocket = None
        self._websocket_factory = websocket_factory or websockets.connect
        self._connected = False
        self._request_counter = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._subscriptions: Dict[int, _RemoteSubscription] = {}
        self._connected_subscriptions = []
        self._receive_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._push_ids = PushIdGenerator()

        logger.info(f"WebSocketStore initialized for gateway: {url}")

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to the gateway."""
        return self._connected and self.websocket is not None

    def reference(self, path: str = "") -> WebSocketReference:
        return WebSocketReference(self, path)

    async def connect(self) -> None:
        """
        Establish the WebSocket connection and start the receive loop.

        Raises:
            StoreConnectionError: If connection fails
        """
        try:
            logger.info(f"Connecting to {self.url}...")
            self.websocket = await self._websocket_factory(self.url)
        except Exception as e:
            logger.error(f"Failed to connect to store gateway: {e}")
            raise StoreConnectionError(f"Could not connect to {self.url}: {e}")

        self._connected = True
        self._receive_task = asyncio.create_task(self.receive_messages())
        logger.info("Connected to store gateway")

        for subscription in list(self._subscriptions.values()):
            self._spawn(self._request("subscribe", subscription.to_dict()))
        self._notify_connected()

    async def disconnect(self) -> None:
        """Close the connection and stop the receive loop."""
        if self.websocket is not None:
            if hasattr(self.websocket, "close"):
                await self.websocket.close()
        if self._receive_task is not None:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None
        self._connection_lost()
        logger.info("Disconnected from store gateway")

    async def receive_messages(self) -> None:
        """
        Receive frames until the connection closes.

        Responses resolve pending requests; event and cancel frames are
        dispatched to the matching subscriptions.
        """
        try:
            async for message in self.websocket:
                self._process_incoming_message(message)
        except ConnectionClosed:
            logger.warning("Connection closed by store gateway")
        finally:
            if self.websocket is not None:
                self._connection_lost()

    def _process_incoming_message(self, message: str) -> None:
        try:
            frame = json.loads(message)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse frame JSON: {e}")
            return

        frame_type = frame.get("type")
        data = frame.get("data", {})

        if frame_type in ("response", "error"):
            future = self._pending.pop(frame.get("request_id"), None)
            if future is None or future.done():
                logger.debug(f"Dropping reply to unknown request: {frame}")
                return
            if frame_type == "response":
                future.set_result(data)
            elif data.get("error_code") == "PERMISSION_DENIED":
                future.set_exception(
                    PermissionDeniedError(data.get("path", ""), data.get("error", ""))
                )
            else:
                future.set_exception(StoreError(data.get("error", "Unknown error")))
        elif frame_type == "event":
            self._handle_event(data)
        elif frame_type == "cancel":
            self._handle_cancel(data)
        else:
            logger.debug(f"Unhandled frame type: {frame_type}")

    def _handle_event(self, data: Dict[str, Any]) -> None:
        subscription = self._subscriptions.get(data.get("subscription_id"))
        if subscription is None or not subscription.active:
            return
        query = subscription.query
        if subscription.event_type == VALUE:
            snapshot = query._snapshot(None, data.get("value"), data.get("priority"))
        else:
            snapshot = query._snapshot(
                data.get("key"), data.get("value"), data.get("priority")
            )
        _invoke(subscription.callback, snapshot, subscription.path)

    def _handle_cancel(self, data: Dict[str, Any]) -> None:
        subscription = self._subscriptions.pop(data.get("subscription_id"), None)
        if subscription is None:
            return
        subscription.active = False
        logger.warning(f"Subscription at /{subscription.path} cancelled by gateway")
        if subscription.cancel_callback is not None:
            _invoke(
                subscription.cancel_callback,
                PermissionDeniedError(
                    subscription.path, data.get("error", "permission_denied")
                ),
                subscription.path,
            )

    async def _request(self, op: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_connected:
            raise StoreConnectionError("Not connected to a store gateway")

        request_id = self._next_id()
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        frame = {"type": op, "request_id": request_id, "data": data}
        try:
            await self.websocket.send(json.dumps(frame))
        except Exception:
            self._pending.pop(request_id, None)
            raise
        return await future

    def _next_id(self) -> int:
        self._request_counter += 1
        return self._request_counter

    def _drop_subscription(self, subscription: _RemoteSubscription) -> None:
        if subscription in self._connected_subscriptions:
            self._connected_subscriptions.remove(subscription)
            return
        if self._subscriptions.pop(subscription.subscription_id, None) is None:
            return
        if self.is_connected:
            self._spawn(
                self._request(
                    "unsubscribe",
                    {"subscription_id": subscription.subscription_id},
                )
            )

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background store request failed: {task.exception()}")

    def _connection_lost(self) -> None:
        was_connected = self._connected
        self._connected = False
        self.websocket = None
        for future in self._pending.values():
            if not future.done():
                future.set_exception(StoreConnectionError("Connection lost"))
        self._pending.clear()
        if was_connected:
            self._notify_connected()

    def _notify_connected(self) -> None:
        for subscription in list(self._connected_subscriptions):
            if subscription.active:
                _invoke(
                    subscription.callback,
                    subscription.query._snapshot(None, self.is_connected),
                    subscription.path,
                )
