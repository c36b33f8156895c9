"""
Firechat Package

Chat session layer on top of a realtime store: authentication and
identity, room membership with presence that survives reconnects,
bounded message streams, invites and moderation, all surfaced to the
application through named events.

Modules:
    - client: the Firechat facade
    - session / rooms / messaging / moderation / directory: components
    - presence: presence bits re-armed on reconnect
    - events: event names and the event bus
    - store: store contract and adapters
    - schemas: stored records
"""

from . import events
from .auth import AuthData, Authenticator, StaticAuthenticator
from .client import Firechat
from .config import DEFAULT_NUM_MAX_MESSAGES, FirechatOptions
from .context import RoomState, SessionContext
from .events import EventBus
from .exceptions import (
    AuthenticationError,
    FirechatError,
    InviteNotFoundError,
    NotAuthenticatedError,
    PermissionDeniedError,
    RoomNotFoundError,
    StoreConnectionError,
    StoreError,
)
from .presence import PresenceBit, PresenceTracker
from .schemas import Invite, Message, Notification, OnlineUser, Room, User
from .session import SessionManager, requires_auth
from .store import MemoryDatabase, MemoryStore, WebSocketStore

__all__ = [
    # Client
    "Firechat",
    "FirechatOptions",
    "DEFAULT_NUM_MAX_MESSAGES",
    "SessionContext",
    "RoomState",
    # Components
    "EventBus",
    "PresenceBit",
    "PresenceTracker",
    "SessionManager",
    "requires_auth",
    "events",
    # Authentication
    "AuthData",
    "Authenticator",
    "StaticAuthenticator",
    # Stores
    "MemoryDatabase",
    "MemoryStore",
    "WebSocketStore",
    # Records
    "User",
    "OnlineUser",
    "Room",
    "Message",
    "Invite",
    "Notification",
    # Errors
    "FirechatError",
    "NotAuthenticatedError",
    "AuthenticationError",
    "InviteNotFoundError",
    "RoomNotFoundError",
    "StoreError",
    "PermissionDeniedError",
    "StoreConnectionError",
]
