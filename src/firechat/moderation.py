"""
Invite and Moderation Workflow

Invites:
    - invite_user grants private-room access first, then delivers the
      invite into the invitee's inbox and watches it for a response
    - accept_invite enters the room and marks the invite accepted
    - decline_invite marks the invite declined

Moderation:
    - toggle_user_mute flips a flag in the current user's mute list
    - warn_user / suspend_user push notifications to the target's inbox;
      suspensions also record an expiry in the suspensions registry

Incoming invites and notifications are delivered through the event bus.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from . import events
from .context import SessionContext
from .exceptions import (
    InviteNotFoundError,
    NotAuthenticatedError,
    RoomNotFoundError,
    StoreError,
)
from .rooms import RoomCoordinator
from .schemas import (
    INVITE_ACCEPTED,
    INVITE_DECLINED,
    NOTIFICATION_SUSPENSION,
    NOTIFICATION_WARNING,
    Invite,
    Notification,
)
from .store import SERVER_TIMESTAMP, Snapshot

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ModerationWorkflow:
    """Invite, mute, warning and suspension operations for one session."""

    def __init__(
        self,
        context: SessionContext,
        rooms: RoomCoordinator,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._context = context
        self._rooms = rooms
        self._clock = clock or _now_ms

    def _require_user(self) -> None:
        if not self._context.is_authenticated:
            self._context.events.emit(events.AUTH_REQUIRED)
            raise NotAuthenticatedError()

    def _invites_ref(self, user_id: str):
        return self._context.users_ref.child(user_id).child("invites")

    # Invites

    async def invite_user(self, user_id: str, room_id: str) -> Optional[str]:
        """
        Invite a user into a room.

        For private rooms the invitee is added to the authorized users
        first, unless already listed; if that grant fails the invite is not
        sent.

        Returns:
            The invite id, or None if the access grant failed

        Raises:
            RoomNotFoundError: If the room does not exist
        """
        self._require_user()
        context = self._context

        room = await self._rooms.get_room(room_id)
        if room is None:
            raise RoomNotFoundError(room_id)

        if room.is_private and not room.is_authorized(user_id):
            try:
                await context.room_ref.child(room_id).child(
                    "authorizedUsers"
                ).child(user_id).set(True)
            except StoreError as e:
                logger.error(
                    f"Could not authorize {user_id} for room {room_id}: {e}"
                )
                return None

        invite_ref = self._invites_ref(user_id).push()
        invite = Invite(
            id=invite_ref.key,
            from_user_id=context.user_id,
            from_user_name=context.user_name,
            room_id=room_id,
        )
        await invite_ref.set(invite.to_dict())
        logger.info(f"Invited {user_id} to room {room_id}")

        # The listener ends quietly if we lose access to the invite.
        context.invite_subscriptions[invite.id] = invite_ref.on(
            "value",
            self._on_invite_response,
            lambda error: context.invite_subscriptions.pop(invite.id, None),
        )
        return invite.id

    async def accept_invite(self, invite_id: str) -> None:
        """
        Enter the invite's room and mark the invite accepted.

        Raises:
            InviteNotFoundError: If the invite id is unknown
        """
        self._require_user()
        context = self._context
        invite_ref = self._invites_ref(context.user_id).child(invite_id)

        snapshot = await invite_ref.get()
        if snapshot.value is None:
            raise InviteNotFoundError(invite_id)
        invite = Invite.from_snapshot(snapshot)
        if invite.responded:
            logger.warning(
                f"Invite {invite_id} was already {invite.status}; accepting it again"
            )

        await self._rooms.enter_room(invite.room_id)
        await invite_ref.update(
            {"status": INVITE_ACCEPTED, "toUserName": context.user_name}
        )

    async def decline_invite(self, invite_id: str) -> None:
        """Mark the invite declined without joining the room."""
        self._require_user()
        context = self._context
        await self._invites_ref(context.user_id).child(invite_id).update(
            {"status": INVITE_DECLINED, "toUserName": context.user_name}
        )

    def on_invite(self, snapshot: Snapshot) -> None:
        """Deliver a new invite from our inbox, once."""
        if snapshot.value is None:
            return
        invite = Invite.from_snapshot(snapshot)
        # Skip invites we've already responded to.
        if invite.responded:
            return
        self._context.spawn(self._deliver_invite(invite))

    async def _deliver_invite(self, invite: Invite) -> None:
        room = await self._rooms.get_room(invite.room_id)
        if room is None:
            logger.warning(
                f"Dropping invite {invite.id} to missing room {invite.room_id}"
            )
            return
        invite.to_room_name = room.name
        self._context.events.emit(events.ROOM_INVITE, invite)

    def _on_invite_response(self, snapshot: Snapshot) -> None:
        if snapshot.value is None:
            return
        invite = Invite.from_snapshot(snapshot)
        if not invite.responded:
            return
        self._context.events.emit(events.ROOM_INVITE_RESPONSE, invite)

    # Moderation

    async def toggle_user_mute(self, user_id: str) -> bool:
        """
        Mute or unmute a user for the current user.

        Muting only affects client-side filtering of received messages.

        Returns:
            True if the user is now muted
        """
        self._require_user()
        result = await self._context.user_ref.child("muted").child(
            user_id
        ).transaction(lambda is_muted: None if is_muted else True)
        muted = bool(result.snapshot.value)
        action = "Muted" if muted else "Unmuted"
        logger.info(f"{action} user {user_id}")
        return muted

    async def send_superuser_notification(
        self,
        user_id: str,
        notification_type: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Push a moderator notification into a user's inbox."""
        notification_ref = (
            self._context.users_ref.child(user_id).child("notifications").push()
        )
        await notification_ref.set(
            {
                "fromUserId": self._context.user_id,
                "timestamp": SERVER_TIMESTAMP,
                "notificationType": notification_type,
                "data": data or {},
            }
        )
        return notification_ref.key

    async def warn_user(self, user_id: str) -> str:
        """Warn a user for violating the terms of service or being abusive."""
        return await self.send_superuser_notification(user_id, NOTIFICATION_WARNING)

    async def suspend_user(self, user_id: str, time_length_seconds: float) -> int:
        """
        Put a user into read-only mode for a period.

        Re-suspending replaces the previous expiry.

        Returns:
            The suspension expiry (ms since the epoch)
        """
        suspended_until = self._clock() + int(1000 * time_length_seconds)
        try:
            await self._context.suspensions_ref.child(user_id).set(suspended_until)
        except StoreError as e:
            logger.error(f"Could not suspend {user_id}: {e}")
            raise
        await self.send_superuser_notification(
            user_id, NOTIFICATION_SUSPENSION, {"suspendedUntil": suspended_until}
        )
        logger.info(f"Suspended {user_id} until {suspended_until}")
        return suspended_until

    def on_notification(self, snapshot: Snapshot) -> None:
        """Deliver an unread notification and mark it read when allowed."""
        if snapshot.value is None:
            return
        notification = Notification.from_snapshot(snapshot)
        if notification.read:
            return
        # Active suspensions stay unread until they expire.
        if not notification.is_active_suspension(self._clock()):
            self._context.spawn(snapshot.ref.child("read").set(True))
        self._context.events.emit(events.NOTIFICATION, notification)
