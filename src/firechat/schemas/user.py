"""
User Schema Definitions

Profile records kept under `users/<uid>` and the entries listed by the
online-user directory.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from .base import BaseRecord


@dataclass
class User(BaseRecord):
    """
    A chat user's profile.

    Attributes:
        id: User id from the authentication provider
        name: Display name
        muted: Ids of users this user has muted
        is_moderator: Loaded from the moderator registry, not stored here
    """

    id: str
    name: str
    muted: Set[str] = field(default_factory=set)
    is_moderator: bool = False

    @classmethod
    def _from_data(cls, data: Dict[str, Any], key: Optional[str]) -> "User":
        muted = data.get("muted") or {}
        return cls(
            id=data.get("id", key),
            name=data.get("name", ""),
            muted={user_id for user_id, flag in muted.items() if flag},
        )

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.muted:
            record["muted"] = {user_id: True for user_id in sorted(self.muted)}
        return record


@dataclass
class OnlineUser(BaseRecord):
    """A user as listed in room presence and the online directory."""

    id: str
    name: str

    @classmethod
    def _from_data(cls, data: Dict[str, Any], key: Optional[str]) -> "OnlineUser":
        return cls(id=data.get("id", key), name=data.get("name", ""))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}
