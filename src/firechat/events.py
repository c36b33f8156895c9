"""
Event Bus

Maps event names to ordered lists of callbacks. Callbacks for an event
run synchronously, in registration order, when the event fires.

Events emitted by the chat core:
    - user-update: (user) the current user's record changed
    - room-enter: ({"id", "name"}) the user entered a room
    - room-exit: (room_id) the user left a room
    - message-add: (room_id, message) a message arrived
    - message-remove: (room_id, message_id) a message was removed
    - room-invite: (invite) a new invite arrived
    - room-invite-response: (invite) an invitee answered an invite we sent
    - notification: (notification) a moderator notification arrived
    - auth-required: () an operation needed a signed-in user
"""

import logging
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

USER_UPDATE = "user-update"
ROOM_ENTER = "room-enter"
ROOM_EXIT = "room-exit"
MESSAGE_ADD = "message-add"
MESSAGE_REMOVE = "message-remove"
ROOM_INVITE = "room-invite"
ROOM_INVITE_RESPONSE = "room-invite-response"
NOTIFICATION = "notification"
AUTH_REQUIRED = "auth-required"

EVENT_NAMES = (
    USER_UPDATE,
    ROOM_ENTER,
    ROOM_EXIT,
    MESSAGE_ADD,
    MESSAGE_REMOVE,
    ROOM_INVITE,
    ROOM_INVITE_RESPONSE,
    NOTIFICATION,
    AUTH_REQUIRED,
)


class EventBus:
    """Registry of callbacks per event name."""

    def __init__(self):
        self._events: Dict[str, List[Callable[..., None]]] = {}

    def add_callback(self, event_id: str, callback: Callable[..., None]) -> None:
        """Append a callback for an event."""
        if event_id not in EVENT_NAMES:
            logger.warning(f"Registering callback for unknown event: {event_id}")
        self._events.setdefault(event_id, []).append(callback)

    def remove_callback(
        self, event_id: str, callback: Optional[Callable[..., None]] = None
    ) -> None:
        """Remove one callback, or every callback when none is given."""
        if callback is None:
            self._events.pop(event_id, None)
            return
        callbacks = self._events.get(event_id, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def get_callbacks(self, event_id: str) -> List[Callable[..., None]]:
        return list(self._events.get(event_id, []))

    def emit(self, event_id: str, *args) -> None:
        """Invoke each callback for event_id with args."""
        callbacks = self.get_callbacks(event_id)
        logger.debug(f"Emitting {event_id} to {len(callbacks)} callbacks")
        for callback in callbacks:
            callback(*args)
