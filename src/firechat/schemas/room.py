"""
Room Schema Definitions

Room metadata kept under `room-metadata/<room>` and the per-user
membership records used to resume a session.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from .base import BaseRecord

ROOM_TYPE_PUBLIC = "public"
ROOM_TYPE_PRIVATE = "private"


@dataclass
class Room(BaseRecord):
    """
    Metadata for a chat room.

    Attributes:
        id: Push key of the room
        name: Display name
        type: "public" or "private"
        created_by_user_id: Id of the creator
        created_at: Server timestamp (ms) of creation
        authorized_users: Ids allowed into a private room; None for public
    """

    id: str
    name: str
    type: str = ROOM_TYPE_PUBLIC
    created_by_user_id: Optional[str] = None
    created_at: Optional[int] = None
    authorized_users: Optional[Set[str]] = None

    @property
    def is_private(self) -> bool:
        return self.type == ROOM_TYPE_PRIVATE

    def is_authorized(self, user_id: str) -> bool:
        """Public rooms admit everyone; private rooms check the list."""
        if self.authorized_users is None:
            return not self.is_private
        return user_id in self.authorized_users

    @classmethod
    def _from_data(cls, data: Dict[str, Any], key: Optional[str]) -> "Room":
        authorized = data.get("authorizedUsers")
        return cls(
            id=data.get("id", key),
            name=data.get("name"),
            type=data.get("type", ROOM_TYPE_PUBLIC),
            created_by_user_id=data.get("createdByUserId"),
            created_at=data.get("createdAt"),
            authorized_users=(
                {user_id for user_id, flag in authorized.items() if flag}
                if authorized is not None
                else None
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "createdByUserId": self.created_by_user_id,
            "createdAt": self.created_at,
        }
        if self.authorized_users is not None:
            record["authorizedUsers"] = {
                user_id: True for user_id in sorted(self.authorized_users)
            }
        return record


@dataclass
class RoomMembership(BaseRecord):
    """Record under `users/<uid>/rooms/<room>` marking an active membership."""

    id: str
    name: str
    active: bool = True

    @classmethod
    def _from_data(cls, data: Dict[str, Any], key: Optional[str]) -> "RoomMembership":
        return cls(
            id=data.get("id", key),
            name=data.get("name"),
            active=bool(data.get("active", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "active": self.active}
