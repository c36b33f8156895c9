"""
Messaging Engine

Sends and removes messages and turns message-stream events into
message-add / message-remove callbacks. The per-room window of recent
messages is bounded by the subscription itself (see RoomCoordinator),
never by trimming on the client.
"""

import logging
from typing import Optional

from . import events
from .context import SessionContext
from .exceptions import NotAuthenticatedError
from .schemas import DEFAULT_MESSAGE_TYPE, Message
from .store import SERVER_TIMESTAMP, Snapshot

logger = logging.getLogger(__name__)


class MessagingEngine:
    """Message operations for one session."""

    def __init__(self, context: SessionContext):
        self._context = context

    async def send_message(
        self,
        room_id: str,
        message_content: str,
        message_type: Optional[str] = None,
    ) -> str:
        """
        Append a message to a room's stream.

        The server timestamp is both the message's timestamp field and its
        sort priority.

        Returns:
            The new message's id

        Raises:
            NotAuthenticatedError: If no user is set (auth-required fires)
        """
        context = self._context
        if not context.is_authenticated:
            context.events.emit(events.AUTH_REQUIRED)
            raise NotAuthenticatedError()

        message = {
            "userId": context.user_id,
            "name": context.user_name,
            "timestamp": SERVER_TIMESTAMP,
            "message": message_content,
            "type": message_type or DEFAULT_MESSAGE_TYPE,
        }
        new_message_ref = context.message_ref.child(room_id).push()
        await new_message_ref.set_with_priority(message, SERVER_TIMESTAMP)
        logger.debug(f"Sent message {new_message_ref.key} to room {room_id}")
        return new_message_ref.key

    async def delete_message(self, room_id: str, message_id: str) -> None:
        await self._context.message_ref.child(room_id).child(message_id).remove()
        logger.debug(f"Deleted message {message_id} from room {room_id}")

    def on_new_message(self, room_id: str, snapshot: Snapshot) -> None:
        message = Message.from_snapshot(snapshot)
        self._context.events.emit(events.MESSAGE_ADD, room_id, message)

    def on_remove_message(self, room_id: str, snapshot: Snapshot) -> None:
        self._context.events.emit(events.MESSAGE_REMOVE, room_id, snapshot.key)
