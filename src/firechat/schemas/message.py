"""
Message Schema Definitions

Chat messages kept under `room-messages/<room>/<push key>`, ordered by a
priority equal to their server timestamp.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .base import BaseRecord

DEFAULT_MESSAGE_TYPE = "default"


@dataclass
class Message(BaseRecord):
    """
    A chat message.

    Attributes:
        id: Push key of the message
        user_id: Id of the sender
        name: Display name of the sender
        timestamp: Server timestamp (ms), also the sort priority
        message: Message content
        type: Application-defined message type
    """

    id: str
    user_id: str
    name: str
    timestamp: Optional[int]
    message: str
    type: str = DEFAULT_MESSAGE_TYPE

    @classmethod
    def _from_data(cls, data: Dict[str, Any], key: Optional[str]) -> "Message":
        return cls(
            id=key if key is not None else data.get("id"),
            user_id=data.get("userId"),
            name=data.get("name"),
            timestamp=data.get("timestamp"),
            message=data.get("message"),
            type=data.get("type", DEFAULT_MESSAGE_TYPE),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "timestamp": self.timestamp,
            "message": self.message,
            "type": self.type,
        }
