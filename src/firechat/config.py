"""
Firechat Configuration

Options for a chat session plus the path layout used inside the backend
store. Options can be built directly or read from the environment:

    FIRECHAT_NUM_MAX_MESSAGES  per-room message window (default 50)
    FIRECHAT_AUTH_PROVIDER     OAuth provider name (default github)
    FIRECHAT_LOG_LEVEL         log level used by the command line entry point
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_NUM_MAX_MESSAGES = 50
DEFAULT_AUTH_PROVIDER = "github"
DEFAULT_LOG_LEVEL = "INFO"

# Backend store layout
USERS_PATH = "users"
ROOM_METADATA_PATH = "room-metadata"
ROOM_MESSAGES_PATH = "room-messages"
ROOM_USERS_PATH = "room-users"
MODERATORS_PATH = "moderators"
SUSPENSIONS_PATH = "suspensions"
USER_NAMES_ONLINE_PATH = "user-names-online"
CONNECTED_PATH = ".info/connected"


@dataclass
class FirechatOptions:
    """
    Options for a Firechat session.

    Attributes:
        num_max_messages: Number of most recent messages observed per room
        auth_provider: Provider passed to the OAuth popup flow
    """

    num_max_messages: int = DEFAULT_NUM_MAX_MESSAGES
    auth_provider: str = DEFAULT_AUTH_PROVIDER

    def __post_init__(self):
        if not isinstance(self.num_max_messages, int) or self.num_max_messages < 1:
            raise ValueError(
                f"num_max_messages must be a positive integer, "
                f"got {self.num_max_messages!r}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FirechatOptions":
        """Build options from environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            num_max_messages=int(
                env.get("FIRECHAT_NUM_MAX_MESSAGES", DEFAULT_NUM_MAX_MESSAGES)
            ),
            auth_provider=env.get("FIRECHAT_AUTH_PROVIDER", DEFAULT_AUTH_PROVIDER),
        )
