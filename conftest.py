"""
Shared test fixtures.

Clients run against MemoryStore connections that share one
MemoryDatabase, so several users can interact in a single test.
"""

import pytest

from src.firechat import (
    AuthData,
    Firechat,
    FirechatOptions,
    MemoryDatabase,
    MemoryStore,
    StaticAuthenticator,
)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database(clock):
    return MemoryDatabase(clock=clock)


@pytest.fixture
def make_client(database, clock):
    """Factory for clients; each gets its own store connection."""

    def factory(
        user_id="alice",
        user_name=None,
        signed_in=True,
        num_max_messages=50,
    ):
        store = MemoryStore(database)
        identity = AuthData(user_id, user_name or user_id.capitalize())
        authenticator = StaticAuthenticator(identity, signed_in=signed_in)
        return Firechat(
            store,
            authenticator,
            FirechatOptions(num_max_messages=num_max_messages),
            clock=clock,
        )

    return factory


@pytest.fixture
def alice(make_client):
    return make_client("alice", "Alice")


@pytest.fixture
def bob(make_client):
    return make_client("bob", "Bob")
