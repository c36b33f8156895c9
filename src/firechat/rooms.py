"""
Room Coordinator

Tracks which rooms the current user has joined and drives each room
through NotJoined -> Joining -> Joined -> NotJoined. Joining records a
membership for session resumption, queues room presence, and subscribes
to the room's message stream bounded to the most recent messages. When
the backend cancels that subscription (access revoked) the room is left.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from . import events
from .context import RoomState, SessionContext
from .messaging import MessagingEngine
from .presence import PresenceTracker
from .schemas import ROOM_TYPE_PRIVATE, ROOM_TYPE_PUBLIC, Room, RoomMembership
from .store import SERVER_TIMESTAMP, Reference

logger = logging.getLogger(__name__)


class RoomCoordinator:
    """Enters, leaves, creates and looks up rooms for one session."""

    def __init__(
        self,
        context: SessionContext,
        presence: PresenceTracker,
        messaging: MessagingEngine,
    ):
        self._context = context
        self._presence = presence
        self._messaging = messaging

    def is_joined(self, room_id: str) -> bool:
        return self._context.rooms.get(room_id) is RoomState.JOINED

    @property
    def joined_rooms(self) -> List[str]:
        return [
            room_id
            for room_id, state in self._context.rooms.items()
            if state is RoomState.JOINED
        ]

    def _presence_ref(self, room_id: str) -> Reference:
        context = self._context
        return (
            context.room_users_ref.child(room_id)
            .child(context.user_id)
            .child(context.session_id)
        )

    async def get_room(self, room_id: str) -> Optional[Room]:
        """Fetch room metadata, or None if the room does not exist."""
        snapshot = await self._context.room_ref.child(room_id).get()
        if snapshot.value is None:
            return None
        return Room.from_snapshot(snapshot)

    async def get_room_list(self) -> List[Room]:
        """Fetch metadata for every room; empty when there are none."""
        snapshot = await self._context.room_ref.get()
        return [Room.from_snapshot(child) for child in snapshot.children()]

    async def enter_room(self, room_id: str) -> None:
        """
        Join a room.

        Missing rooms (or rooms without a name) are ignored without firing
        any event; entering a room already joined does nothing.
        """
        if not room_id:
            return
        room = await self.get_room(room_id)
        if room is None or not room.name:
            logger.debug(f"Not entering unknown room {room_id}")
            return

        context = self._context
        if room_id in context.rooms:
            return
        context.rooms[room_id] = RoomState.JOINING

        if context.is_authenticated:
            # Save the membership so the session can be resumed later.
            membership = RoomMembership(id=room_id, name=room.name, active=True)
            await context.user_ref.child("rooms").child(room_id).set(
                membership.to_dict()
            )
            await self._presence.queue_presence_operation(
                self._presence_ref(room_id),
                {"id": context.user_id, "name": context.user_name},
                None,
            )

        if context.rooms.get(room_id) is not RoomState.JOINING:
            # Left again while the writes above were in flight; the leave
            # ran before our presence existed, so undo it here.
            logger.debug(f"Room {room_id} was left while entering")
            if context.is_authenticated:
                await self._presence.remove_presence_operation(
                    self._presence_ref(room_id).path, None
                )
                await context.user_ref.child("rooms").child(room_id).remove()
            return
        context.rooms[room_id] = RoomState.JOINED
        logger.info(f"Entered room {room.name} ({room_id})")

        # Callbacks run before messages start arriving.
        context.events.emit(events.ROOM_ENTER, {"id": room_id, "name": room.name})
        self._subscribe_messages(room_id)

    def _subscribe_messages(self, room_id: str) -> None:
        context = self._context
        query = context.message_ref.child(room_id).limit_to_last(
            context.options.num_max_messages
        )
        subscriptions = context.room_subscriptions.setdefault(room_id, [])
        subscriptions.append(
            query.on(
                "child_added",
                lambda snapshot: self._messaging.on_new_message(room_id, snapshot),
                lambda error: self._on_messages_cancelled(room_id, error),
            )
        )
        if room_id not in context.rooms:
            # Cancelled on the spot: no permission to read this room.
            return
        subscriptions.append(
            query.on(
                "child_removed",
                lambda snapshot: self._messaging.on_remove_message(room_id, snapshot),
            )
        )

    def _on_messages_cancelled(self, room_id: str, error: Exception) -> None:
        logger.warning(f"Lost access to messages in room {room_id}: {error}")
        self._detach(room_id)
        self._context.spawn(self.leave_room(room_id))

    def _detach(self, room_id: str) -> None:
        for subscription in self._context.room_subscriptions.pop(room_id, []):
            subscription.unsubscribe()
        self._context.message_ref.child(room_id).off()
        self._context.rooms.pop(room_id, None)

    async def leave_room(self, room_id: str) -> None:
        """Leave a room; room-exit fires once the cleanup writes are done."""
        context = self._context
        self._detach(room_id)

        if context.is_authenticated:
            # Cancel the on-disconnect removal and clear presence now.
            await self._presence.remove_presence_operation(
                self._presence_ref(room_id).path, None
            )
            await context.user_ref.child("rooms").child(room_id).remove()

        logger.info(f"Left room {room_id}")
        context.events.emit(events.ROOM_EXIT, room_id)

    async def resume_session(self) -> Dict[str, Any]:
        """
        Re-enter every room recorded as a membership of the current user.

        Rooms are entered concurrently; a failure in one is logged and does
        not stop the others.

        Returns:
            The raw membership map read from the store
        """
        snapshot = await self._context.user_ref.child("rooms").get()
        rooms = snapshot.value or {}

        room_ids = [
            RoomMembership.from_dict(record, key).id for key, record in rooms.items()
        ]
        results = await asyncio.gather(
            *(self.enter_room(room_id) for room_id in room_ids),
            return_exceptions=True,
        )
        for room_id, result in zip(room_ids, results):
            if isinstance(result, Exception):
                logger.error(f"Could not re-enter room {room_id}: {result}")
        return rooms

    async def create_room(self, room_name: str, room_type: Optional[str] = None) -> str:
        """
        Create a room, enter it, and return its id.

        Private rooms start with the creator as their only authorized user.
        """
        context = self._context
        new_room_ref = context.room_ref.push()
        room = Room(
            id=new_room_ref.key,
            name=room_name,
            type=room_type or ROOM_TYPE_PUBLIC,
            created_by_user_id=context.user_id,
        )
        if room.type == ROOM_TYPE_PRIVATE:
            room.authorized_users = {context.user_id}

        record = room.to_dict()
        record["createdAt"] = SERVER_TIMESTAMP
        await new_room_ref.set(record)
        logger.info(f"Created {room.type} room {room_name} ({room.id})")

        await self.enter_room(room.id)
        return room.id

    async def leave_all(self) -> None:
        for room_id in list(self._context.rooms):
            await self.leave_room(room_id)
