"""
Invite and Notification Schema Definitions

Both records live in a user's inbox: `users/<uid>/invites/<key>` and
`users/<uid>/notifications/<key>`.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .base import BaseRecord

INVITE_ACCEPTED = "accepted"
INVITE_DECLINED = "declined"

NOTIFICATION_WARNING = "warning"
NOTIFICATION_SUSPENSION = "suspension"


@dataclass
class Invite(BaseRecord):
    """
    An invitation into a room.

    Attributes:
        id: Push key of the invite
        from_user_id: Id of the inviter
        from_user_name: Display name of the inviter
        room_id: Target room
        status: None until the invitee responds, then accepted/declined
        to_user_name: Display name of the invitee once responded
        to_room_name: Room name, filled in on delivery (not stored)
    """

    id: str
    from_user_id: str
    from_user_name: str
    room_id: str
    status: Optional[str] = None
    to_user_name: Optional[str] = None
    to_room_name: Optional[str] = None

    @property
    def responded(self) -> bool:
        return bool(self.status)

    @classmethod
    def _from_data(cls, data: Dict[str, Any], key: Optional[str]) -> "Invite":
        return cls(
            id=data.get("id") or key,
            from_user_id=data.get("fromUserId"),
            from_user_name=data.get("fromUserName"),
            room_id=data.get("roomId"),
            status=data.get("status"),
            to_user_name=data.get("toUserName"),
        )

    def to_dict(self) -> Dict[str, Any]:
        record = {
            "id": self.id,
            "fromUserId": self.from_user_id,
            "fromUserName": self.from_user_name,
            "roomId": self.room_id,
        }
        if self.status is not None:
            record["status"] = self.status
        if self.to_user_name is not None:
            record["toUserName"] = self.to_user_name
        return record


@dataclass
class Notification(BaseRecord):
    """
    A moderator notification.

    Attributes:
        id: Push key of the notification
        from_user_id: Id of the moderator who sent it
        timestamp: Server timestamp (ms)
        notification_type: "warning", "suspension", ...
        data: Type-specific payload (suspensions carry suspendedUntil)
        read: Whether the notification was marked read
    """

    id: str
    from_user_id: Optional[str]
    timestamp: Optional[int]
    notification_type: str
    data: Dict[str, Any] = field(default_factory=dict)
    read: bool = False

    @property
    def suspended_until(self) -> Optional[int]:
        return self.data.get("suspendedUntil")

    def is_active_suspension(self, now_ms: int) -> bool:
        """True for a suspension notice whose expiry has not passed."""
        if self.notification_type != NOTIFICATION_SUSPENSION:
            return False
        until = self.suspended_until
        return until is None or until >= now_ms

    @classmethod
    def _from_data(cls, data: Dict[str, Any], key: Optional[str]) -> "Notification":
        return cls(
            id=key,
            from_user_id=data.get("fromUserId"),
            timestamp=data.get("timestamp"),
            notification_type=data.get("notificationType"),
            data=dict(data.get("data") or {}),
            read=bool(data.get("read", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        record = {
            "fromUserId": self.from_user_id,
            "timestamp": self.timestamp,
            "notificationType": self.notification_type,
            "data": self.data,
        }
        if self.read:
            record["read"] = True
        return record
