"""
Authentication Adapter

The chat core never runs a sign-in UI itself. It asks an Authenticator
for the current identity and, when there is none, for the provider's
OAuth popup flow.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from .exceptions import AuthenticationError

logger = logging.getLogger(__name__)


@dataclass
class AuthData:
    """
    Identity returned by the authentication provider.

    Attributes:
        uid: Provider-scoped user id
        display_name: Name shown to other users
        provider: Provider that issued the identity
    """

    uid: str
    display_name: str
    provider: str = "github"


class Authenticator(Protocol):
    """Port for the external authentication provider."""

    def get_auth(self) -> Optional[AuthData]:
        """Current identity, or None if nobody is signed in."""
        ...

    async def auth_with_oauth_popup(self, provider: str) -> AuthData:
        """
        Run the provider's sign-in flow.

        Raises:
            AuthenticationError: If the flow fails or is dismissed
        """
        ...


class StaticAuthenticator:
    """
    Authenticator with a fixed identity.

    With signed_in=False the identity is only handed out by the popup
    flow; with identity=None the popup flow fails.
    """

    def __init__(self, identity: Optional[AuthData] = None, signed_in: bool = True):
        self.identity = identity
        self.signed_in = signed_in and identity is not None
        self.popup_calls = 0

    def get_auth(self) -> Optional[AuthData]:
        return self.identity if self.signed_in else None

    async def auth_with_oauth_popup(self, provider: str) -> AuthData:
        self.popup_calls += 1
        if self.identity is None:
            raise AuthenticationError(f"Sign-in with {provider} was not completed")
        logger.info(f"Signed in {self.identity.uid} via {provider}")
        self.signed_in = True
        return self.identity
