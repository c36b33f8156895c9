"""
Session Manager

Owns authentication state and the user's identity: signing in, loading
the profile, wiring the per-user listeners, and the "requires
authentication" policy applied to sensitive operations.
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from . import events
from .auth import AuthData, Authenticator
from .context import SessionContext
from .exceptions import AuthenticationError, StoreError
from .presence import PresenceTracker
from .schemas import User
from .store import ABORT_TRANSACTION, Snapshot

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def requires_auth(operation: F) -> F:
    """
    Wrap a coroutine method so it runs only after authenticate().

    The wrapped method waits for `self.authenticate()` and then calls the
    original with the original arguments. If authentication fails the
    error propagates and the operation does not run.
    """

    @functools.wraps(operation)
    async def wrapper(self, *args, **kwargs):
        await self.authenticate()
        return await operation(self, *args, **kwargs)

    wrapper.requires_auth = True
    return wrapper


class SessionManager:
    """
    Signs the user in and keeps the session's identity current.

    Attributes:
        authenticator: External authentication provider
    """

    def __init__(
        self,
        context: SessionContext,
        presence: PresenceTracker,
        authenticator: Optional[Authenticator] = None,
    ):
        self._context = context
        self._presence = presence
        self.authenticator = authenticator
        self._auth_lock = asyncio.Lock()
        self._auth_data: Optional[AuthData] = None
        # Inbox handlers, wired by the invite/moderation workflow.
        self.on_invite: Optional[Callable[[Snapshot], None]] = None
        self.on_notification: Optional[Callable[[Snapshot], None]] = None

    async def authenticate(self) -> AuthData:
        """
        Make sure a user is signed in.

        Resolves immediately when a user is already set. Otherwise uses the
        provider's current identity, falling back to the OAuth popup flow,
        and then loads that user.

        Raises:
            AuthenticationError: If the popup flow fails
        """
        async with self._auth_lock:
            context = self._context
            if context.is_authenticated:
                if self._auth_data is None:
                    self._auth_data = AuthData(
                        context.user_id,
                        context.user_name,
                        context.options.auth_provider,
                    )
                return self._auth_data

            if self.authenticator is None:
                raise AuthenticationError("No authenticator configured")

            auth = self.authenticator.get_auth()
            if auth is None:
                provider = self._context.options.auth_provider
                logger.info(f"No active sign-in; starting {provider} OAuth flow")
                auth = await self.authenticator.auth_with_oauth_popup(provider)

            await self.set_user(auth.uid, auth.display_name)
            self._auth_data = auth
            return auth

    async def set_user(self, user_id: str, user_name: str) -> User:
        """
        Load (or create) the user's profile and start the session.

        The profile record is created by a transaction only when it lacks
        an id or name; an existing record is left as it is. The moderator
        flag is then read from the moderator registry.

        Args:
            user_id: Id from the authentication provider
            user_name: Display name

        Returns:
            The user's profile

        Raises:
            StoreError: If the profile could not be loaded
        """
        context = self._context
        if context.session_id is not None:
            # Replace the running session instead of stacking a second one.
            await self._end_session()
            self._auth_data = None
        context.user_id = str(user_id)
        context.user_name = str(user_name)

        def create_if_missing(current):
            if not current or not current.get("id") or not current.get("name"):
                return {"id": context.user_id, "name": context.user_name}
            return ABORT_TRANSACTION

        try:
            result = await context.user_ref.transaction(create_if_missing)
        except StoreError as e:
            logger.error(f"Failed to load user {user_id}: {e}")
            context.clear_user()
            raise

        if result.committed:
            logger.info(f"Created profile for user {user_id}")
        user = User.from_snapshot(result.snapshot)

        moderator = await context.moderators_ref.child(context.user_id).get()
        user.is_moderator = bool(moderator.value)
        context.is_moderator = user.is_moderator
        context.user = user

        await self._setup_data_events()
        return user

    async def _setup_data_events(self) -> None:
        context = self._context
        self._presence.start()

        # A unique id for this visit.
        session_ref = context.user_ref.child("sessions").push()
        context.session_id = session_ref.key
        await self._presence.queue_presence_operation(session_ref, True, None)

        # List the user in the online directory.
        username_ref = context.users_online_ref.child(context.user_name.lower())
        await self._presence.queue_presence_operation(
            username_ref.child(context.session_id),
            {"id": context.user_id, "name": context.user_name},
            None,
        )

        user_ref = context.user_ref
        context.user_subscriptions.append(
            user_ref.on("value", self._on_update_user)
        )
        if self.on_invite is not None:
            context.user_subscriptions.append(
                user_ref.child("invites").on("child_added", self.on_invite)
            )
        if self.on_notification is not None:
            context.user_subscriptions.append(
                user_ref.child("notifications").on(
                    "child_added", self.on_notification
                )
            )
        logger.info(
            f"Session {context.session_id} started for {context.user_name}"
        )

    def _on_update_user(self, snapshot: Snapshot) -> None:
        if snapshot.value is None:
            return
        user = User.from_snapshot(snapshot)
        user.is_moderator = self._context.is_moderator
        self._context.user = user
        self._context.events.emit(events.USER_UPDATE, user)

    async def sign_out(self) -> None:
        """Drop session presence, detach user listeners and forget the user."""
        context = self._context
        if context.user_id is None:
            return

        await self._end_session()
        logger.info(f"Signed out {context.user_name}")
        context.clear_user()
        self._auth_data = None

    async def _end_session(self) -> None:
        context = self._context
        for subscription in context.user_subscriptions:
            subscription.unsubscribe()
        context.user_subscriptions.clear()
        for subscription in context.invite_subscriptions.values():
            subscription.unsubscribe()
        context.invite_subscriptions.clear()

        if context.session_id is not None:
            await self._presence.remove_presence_operation(
                context.users_online_ref.child(context.user_name.lower())
                .child(context.session_id)
                .path,
                None,
            )
            await self._presence.remove_presence_operation(
                context.user_ref.child("sessions").child(context.session_id).path,
                None,
            )
        context.session_id = None
