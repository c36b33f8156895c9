"""
Firechat Client

This module provides the Firechat facade: one object per chat session
that wires the session manager, room coordinator, messaging engine,
invite/moderation workflow and user directory around a shared
SessionContext, and exposes them to the application.

Operations that need a signed-in user are wrapped with requires_auth:
they sign the user in first and then run with their original arguments.

Usage:
    chat = Firechat(store, authenticator)
    chat.on("message-add", lambda room_id, message: print(message.message))
    room_id = await chat.create_room("general")
    await chat.send_message(room_id, "Hello!")
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from .auth import AuthData, Authenticator
from .config import FirechatOptions
from .context import SessionContext
from .directory import UserDirectory
from .messaging import MessagingEngine
from .moderation import ModerationWorkflow
from .presence import PresenceTracker
from .rooms import RoomCoordinator
from .schemas import OnlineUser, Room, User
from .session import SessionManager, requires_auth
from .store import Store

logger = logging.getLogger(__name__)


class Firechat:
    """
    Chat session bound to a realtime store.

    Attributes:
        context: State shared by the session's components
        presence: Presence tracker
        session: Session manager (authentication and identity)
        rooms: Room coordinator
        messaging: Messaging engine
        moderation: Invite and moderation workflow
        directory: Online-user directory
    """

    def __init__(
        self,
        store: Store,
        authenticator: Optional[Authenticator] = None,
        options: Optional[FirechatOptions] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize the client.

        Args:
            store: Backend store connection
            authenticator: External authentication provider
            options: Session options (defaults to FirechatOptions())
            clock: Millisecond clock for suspension expiry checks
        """
        self.context = SessionContext(store, options)
        self.presence = PresenceTracker(self.context)
        self.messaging = MessagingEngine(self.context)
        self.rooms = RoomCoordinator(self.context, self.presence, self.messaging)
        self.moderation = ModerationWorkflow(self.context, self.rooms, clock)
        self.session = SessionManager(self.context, self.presence, authenticator)
        self.session.on_invite = self.moderation.on_invite
        self.session.on_notification = self.moderation.on_notification
        self.directory = UserDirectory(self.context)

        logger.info(
            f"Firechat initialized "
            f"(num_max_messages={self.context.options.num_max_messages})"
        )

    # Bindings

    def on(self, event_type: str, callback: Callable[..., None]) -> "Firechat":
        """
        Bind a callback to an event; returns self for chaining.

        See firechat.events for the event names and their arguments.
        """
        self.context.events.add_callback(event_type, callback)
        return self

    def off(
        self, event_type: str, callback: Optional[Callable[..., None]] = None
    ) -> "Firechat":
        self.context.events.remove_callback(event_type, callback)
        return self

    # Session

    async def authenticate(self) -> AuthData:
        return await self.session.authenticate()

    async def set_user(self, user_id: str, user_name: str) -> User:
        """Load a user; an already running session is left and replaced."""
        if self.context.session_id is not None:
            await self.rooms.leave_all()
        return await self.session.set_user(user_id, user_name)

    @requires_auth
    async def resume_session(self) -> Dict[str, Any]:
        """Re-enter the rooms the user was in; returns the membership map."""
        return await self.rooms.resume_session()

    async def sign_out(self) -> None:
        """Leave every room and end the session's presence."""
        await self.rooms.leave_all()
        await self.session.sign_out()

    @property
    def user(self) -> Optional[User]:
        return self.context.user

    def user_is_moderator(self) -> bool:
        return self.context.is_moderator

    def user_is_muted(self, user_id: str) -> bool:
        """Whether messages from user_id should be hidden for this user."""
        user = self.context.user
        return user is not None and user_id in user.muted

    # Rooms

    @requires_auth
    async def create_room(self, room_name: str, room_type: Optional[str] = None) -> str:
        return await self.rooms.create_room(room_name, room_type)

    @requires_auth
    async def enter_room(self, room_id: str) -> None:
        await self.rooms.enter_room(room_id)

    @requires_auth
    async def leave_room(self, room_id: str) -> None:
        await self.rooms.leave_room(room_id)

    async def get_room(self, room_id: str) -> Optional[Room]:
        return await self.rooms.get_room(room_id)

    async def get_room_list(self) -> List[Room]:
        return await self.rooms.get_room_list()

    @property
    def joined_rooms(self) -> List[str]:
        return self.rooms.joined_rooms

    # Messages

    @requires_auth
    async def send_message(
        self,
        room_id: str,
        message_content: str,
        message_type: Optional[str] = None,
    ) -> str:
        return await self.messaging.send_message(room_id, message_content, message_type)

    async def delete_message(self, room_id: str, message_id: str) -> None:
        await self.messaging.delete_message(room_id, message_id)

    # Invites and moderation

    @requires_auth
    async def invite_user(self, user_id: str, room_id: str) -> Optional[str]:
        return await self.moderation.invite_user(user_id, room_id)

    @requires_auth
    async def accept_invite(self, invite_id: str) -> None:
        await self.moderation.accept_invite(invite_id)

    @requires_auth
    async def decline_invite(self, invite_id: str) -> None:
        await self.moderation.decline_invite(invite_id)

    @requires_auth
    async def toggle_user_mute(self, user_id: str) -> bool:
        return await self.moderation.toggle_user_mute(user_id)

    async def send_superuser_notification(
        self,
        user_id: str,
        notification_type: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> str:
        return await self.moderation.send_superuser_notification(
            user_id, notification_type, data
        )

    async def warn_user(self, user_id: str) -> str:
        return await self.moderation.warn_user(user_id)

    async def suspend_user(self, user_id: str, time_length_seconds: float) -> int:
        return await self.moderation.suspend_user(user_id, time_length_seconds)

    # Directory

    async def get_users_by_room(
        self, room_id: str, limit: Optional[int] = None
    ) -> List[OnlineUser]:
        return await self.directory.get_users_by_room(room_id, limit)

    async def get_users_by_prefix(
        self,
        prefix: str,
        start_at: Optional[str] = None,
        end_at: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[OnlineUser]:
        return await self.directory.get_users_by_prefix(prefix, start_at, end_at, limit)

    # Housekeeping

    async def wait_idle(self) -> None:
        """Wait for work started by incoming events to finish."""
        await self.context.wait_idle()

    async def close(self) -> None:
        """Stop monitoring the connection and drop pending background work."""
        self.presence.stop()
        await self.context.cancel_pending()
