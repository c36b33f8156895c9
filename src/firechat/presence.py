"""
Presence Tracker

Keeps the set of presence bits that must hold while this session is
online. Each bit writes its online value immediately and registers an
on-disconnect write of its offline value.

On-disconnect registrations belong to the live connection and are dropped
by the backend when it goes away, so every bit is re-applied whenever
`.info/connected` turns true again.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import CONNECTED_PATH
from .context import SessionContext
from .store import Reference, Snapshot, Subscription

logger = logging.getLogger(__name__)


@dataclass
class PresenceBit:
    """
    A presence value and the value the server writes when we drop.

    Attributes:
        ref: Location of the presence value
        online_value: Written while connected
        offline_value: Written by the server on disconnect
    """

    ref: Reference
    online_value: Any
    offline_value: Any

    @property
    def path(self) -> str:
        return self.ref.path


class PresenceTracker:
    """Records presence bits and re-arms them after every reconnect."""

    def __init__(self, context: SessionContext):
        self._context = context
        self._bits: Dict[str, PresenceBit] = {}
        self._connected_subscription: Optional[Subscription] = None

    @property
    def bits(self) -> Dict[str, PresenceBit]:
        """Currently recorded bits, keyed by path."""
        return dict(self._bits)

    def start(self) -> None:
        """Monitor connection state; subscribes once per tracker."""
        if self._connected_subscription is not None:
            return
        self._connected_subscription = self._context.store.reference(
            CONNECTED_PATH
        ).on("value", self._on_connection_state)

    def stop(self) -> None:
        if self._connected_subscription is not None:
            self._connected_subscription.unsubscribe()
            self._connected_subscription = None

    async def queue_presence_operation(
        self, ref: Reference, online_value: Any, offline_value: Any
    ) -> PresenceBit:
        """
        Arm the on-disconnect write, set the online value and record the bit.

        Args:
            ref: Location of the presence value
            online_value: Value to hold while connected
            offline_value: Value the server writes when we disconnect

        Returns:
            The recorded PresenceBit
        """
        await ref.on_disconnect().set(offline_value)
        await ref.set(online_value)
        bit = PresenceBit(ref, online_value, offline_value)
        self._bits[ref.path] = bit
        logger.debug(f"Presence queued at /{ref.path}")
        return bit

    async def remove_presence_operation(self, path: str, value: Any) -> None:
        """
        Cancel the on-disconnect write at path and set value directly.

        Args:
            path: Location of the presence value
            value: Value to write now
        """
        bit = self._bits.pop(path, None)
        ref = bit.ref if bit is not None else self._context.store.reference(path)
        await ref.on_disconnect().cancel()
        await ref.set(value)
        logger.debug(f"Presence removed at /{path}")

    async def reapply(self, bit: PresenceBit) -> None:
        await bit.ref.on_disconnect().set(bit.offline_value)
        await bit.ref.set(bit.online_value)

    def _on_connection_state(self, snapshot: Snapshot) -> None:
        if snapshot.value is not True:
            logger.info(f"Connection lost; {len(self._bits)} presence bits pending")
            return
        # Connected (or reconnected): re-arm every bit.
        logger.info(f"Connected; re-applying {len(self._bits)} presence bits")
        for bit in list(self._bits.values()):
            self._context.spawn(self.reapply(bit))
