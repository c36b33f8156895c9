"""
Firechat Exceptions

Error taxonomy for the chat session layer:
    - NotAuthenticatedError: an operation needed a signed-in user
    - AuthenticationError: the external sign-in flow failed
    - InviteNotFoundError / RoomNotFoundError: unknown ids
    - StoreError and subclasses: failures reported by a store adapter
"""


class FirechatError(Exception):
    """Base class for all Firechat errors."""


class NotAuthenticatedError(FirechatError):
    """Raised when an operation requires an authenticated user."""

    def __init__(self, message: str = "Not authenticated or user not set!"):
        super().__init__(message)


class AuthenticationError(FirechatError):
    """Raised when the external authentication flow fails."""


class InviteNotFoundError(FirechatError, LookupError):
    """Raised when an invite id does not resolve to a record."""

    def __init__(self, invite_id: str):
        super().__init__(f"accept_invite({invite_id}): invalid invite id")
        self.invite_id = invite_id


class RoomNotFoundError(FirechatError, LookupError):
    """Raised when a room id does not resolve to room metadata."""

    def __init__(self, room_id: str):
        super().__init__(f"Room not found: {room_id}")
        self.room_id = room_id


class StoreError(FirechatError):
    """A read, write or transaction failed in the backend store."""


class PermissionDeniedError(StoreError):
    """The backend store rejected access to a path."""

    def __init__(self, path: str, message: str = "permission_denied"):
        super().__init__(f"{message}: /{path}")
        self.path = path


class StoreConnectionError(StoreError, ConnectionError):
    """The store transport is not connected or the connection was lost."""
