"""
Session Context

All mutable state of one chat session lives on a SessionContext instance
that every component receives at construction. Nothing is process-wide,
so several independent sessions can run in one process.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Dict, List, Optional, Set

from .config import (
    MODERATORS_PATH,
    ROOM_MESSAGES_PATH,
    ROOM_METADATA_PATH,
    ROOM_USERS_PATH,
    SUSPENSIONS_PATH,
    USER_NAMES_ONLINE_PATH,
    USERS_PATH,
    FirechatOptions,
)
from .events import EventBus
from .schemas import User
from .store import Reference, Store, Subscription

logger = logging.getLogger(__name__)


class RoomState(Enum):
    """Join state of a room for the current user."""

    JOINING = "joining"
    JOINED = "joined"


class SessionContext:
    """
    State shared by the components of one chat session.

    Attributes:
        store: Backend store connection
        options: Session options
        events: Event bus for application callbacks
        user_id: Id of the signed-in user (None before set_user)
        user_name: Display name of the signed-in user
        user: Latest profile record of the signed-in user
        is_moderator: Moderator flag loaded at sign-in
        session_id: Push key identifying this connected instance
        rooms: Join state per room id
        room_subscriptions: Message subscriptions per joined room
        user_subscriptions: Subscriptions on the user's own records
        invite_subscriptions: Response listeners for invites we sent
    """

    def __init__(self, store: Store, options: Optional[FirechatOptions] = None):
        self.store = store
        self.options = options or FirechatOptions()
        self.events = EventBus()

        self.user_id: Optional[str] = None
        self.user_name: Optional[str] = None
        self.user: Optional[User] = None
        self.is_moderator = False
        self.session_id: Optional[str] = None

        self.rooms: Dict[str, RoomState] = {}
        self.room_subscriptions: Dict[str, List[Subscription]] = {}
        self.user_subscriptions: List[Subscription] = []
        self.invite_subscriptions: Dict[str, Subscription] = {}

        self._tasks: Set[asyncio.Task] = set()

    # Commonly-used references

    @property
    def root_ref(self) -> Reference:
        return self.store.reference()

    @property
    def users_ref(self) -> Reference:
        return self.store.reference(USERS_PATH)

    @property
    def user_ref(self) -> Optional[Reference]:
        if self.user_id is None:
            return None
        return self.users_ref.child(self.user_id)

    @property
    def room_ref(self) -> Reference:
        return self.store.reference(ROOM_METADATA_PATH)

    @property
    def message_ref(self) -> Reference:
        return self.store.reference(ROOM_MESSAGES_PATH)

    @property
    def room_users_ref(self) -> Reference:
        return self.store.reference(ROOM_USERS_PATH)

    @property
    def moderators_ref(self) -> Reference:
        return self.store.reference(MODERATORS_PATH)

    @property
    def suspensions_ref(self) -> Reference:
        return self.store.reference(SUSPENSIONS_PATH)

    @property
    def users_online_ref(self) -> Reference:
        return self.store.reference(USER_NAMES_ONLINE_PATH)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def clear_user(self) -> None:
        """Forget the signed-in identity."""
        self.user_id = None
        self.user_name = None
        self.user = None
        self.is_moderator = False
        self.session_id = None

    # Background work started from listener callbacks

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        """Schedule follow-up work; failures are logged, not raised."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Background operation failed: {error}",
                exc_info=(type(error), error, error.__traceback__),
            )

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until all background work, including work it starts, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_pending(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
