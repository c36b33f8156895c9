"""
Schemas Package

Records stored in the backend, organized by category: users, rooms,
messages, and inbox items (invites and notifications).
"""

from .base import BaseRecord
from .invite import (
    INVITE_ACCEPTED,
    INVITE_DECLINED,
    NOTIFICATION_SUSPENSION,
    NOTIFICATION_WARNING,
    Invite,
    Notification,
)
from .message import DEFAULT_MESSAGE_TYPE, Message
from .room import ROOM_TYPE_PRIVATE, ROOM_TYPE_PUBLIC, Room, RoomMembership
from .user import OnlineUser, User

__all__ = [
    # Base class
    "BaseRecord",
    # User schemas
    "User",
    "OnlineUser",
    # Room schemas
    "Room",
    "RoomMembership",
    "ROOM_TYPE_PUBLIC",
    "ROOM_TYPE_PRIVATE",
    # Message schemas
    "Message",
    "DEFAULT_MESSAGE_TYPE",
    # Inbox schemas
    "Invite",
    "Notification",
    "INVITE_ACCEPTED",
    "INVITE_DECLINED",
    "NOTIFICATION_WARNING",
    "NOTIFICATION_SUSPENSION",
]
