"""
Tests for the Session Manager

Tests sign-in, profile creation, the moderator flag, the
requires-authentication policy and signing out.
"""

import asyncio

import pytest

from src.firechat import (
    AuthenticationError,
    Firechat,
    MemoryStore,
    PermissionDeniedError,
    StaticAuthenticator,
    events,
)


async def read(database, path):
    return (await MemoryStore(database).reference(path).get()).value


@pytest.mark.asyncio
async def test_authenticate_creates_profile(alice, database):
    """Test that signing in creates the profile record."""
    auth = await alice.authenticate()

    assert auth.uid == "alice"
    assert alice.user.id == "alice"
    assert alice.user.name == "Alice"
    assert await read(database, "users/alice/id") == "alice"
    assert await read(database, "users/alice/name") == "Alice"


@pytest.mark.asyncio
async def test_existing_profile_is_kept(alice, database):
    """Test that a complete profile record is not overwritten."""
    await MemoryStore(database).reference("users/alice").set(
        {"id": "alice", "name": "Alice Original", "muted": {"bob": True}}
    )

    await alice.authenticate()

    assert alice.user.name == "Alice Original"
    assert alice.user_is_muted("bob")
    assert await read(database, "users/alice/name") == "Alice Original"


@pytest.mark.asyncio
async def test_incomplete_profile_is_repaired(alice, database):
    """Test that a profile without a name is rewritten."""
    await MemoryStore(database).reference("users/alice").set({"id": "alice"})

    await alice.authenticate()

    assert await read(database, "users/alice/name") == "Alice"


@pytest.mark.asyncio
async def test_moderator_flag(alice, bob, database):
    """Test that the moderator registry sets the flag at sign-in."""
    await MemoryStore(database).reference("moderators/alice").set(True)

    await alice.authenticate()
    await bob.authenticate()

    assert alice.user_is_moderator()
    assert alice.user.is_moderator
    assert not bob.user_is_moderator()


@pytest.mark.asyncio
async def test_authenticate_resolves_immediately_when_signed_in(alice):
    """Test that a second authenticate does not sign in again."""
    first = await alice.authenticate()
    session_id = alice.context.session_id

    second = await alice.authenticate()

    assert second == first
    assert alice.context.session_id == session_id
    assert alice.session.authenticator.popup_calls == 0


@pytest.mark.asyncio
async def test_popup_flow_runs_once_under_concurrency(make_client):
    """Test that concurrent gated operations share one sign-in."""
    carol = make_client("carol", "Carol", signed_in=False)

    results = await asyncio.gather(
        carol.authenticate(),
        carol.authenticate(),
        carol.create_room("lobby"),
    )

    assert carol.session.authenticator.popup_calls == 1
    assert results[0].uid == "carol"
    assert carol.joined_rooms == [results[2]]


@pytest.mark.asyncio
async def test_failed_sign_in_blocks_gated_operation(database):
    """Test that a gated operation does not run when sign-in fails."""
    chat = Firechat(MemoryStore(database), StaticAuthenticator(None))

    with pytest.raises(AuthenticationError):
        await chat.create_room("lobby")

    assert chat.user is None
    assert await read(database, "room-metadata") is None


@pytest.mark.asyncio
async def test_authenticate_without_authenticator(database):
    """Test that a client without an authenticator can still set a user."""
    chat = Firechat(MemoryStore(database))

    with pytest.raises(AuthenticationError):
        await chat.authenticate()

    await chat.set_user("dave", "Dave")
    room_id = await chat.create_room("dave's room")

    assert (await chat.authenticate()).uid == "dave"
    assert (await chat.get_room(room_id)).created_by_user_id == "dave"


@pytest.mark.asyncio
async def test_gated_operation_keeps_its_arguments(alice):
    """Test that gated operations run with the arguments they were given."""
    room_id = await alice.create_room("Secret", "private")

    room = await alice.get_room(room_id)
    assert room.name == "Secret"
    assert room.type == "private"
    assert Firechat.create_room.requires_auth is True


@pytest.mark.asyncio
async def test_set_user_failure_clears_identity(alice, database):
    """Test that a failed profile load leaves no user behind."""
    MemoryStore(database).revoke_access("users/alice")

    with pytest.raises(PermissionDeniedError):
        await alice.set_user("alice", "Alice")

    assert alice.user is None
    assert alice.context.user_id is None


@pytest.mark.asyncio
async def test_user_update_events(alice):
    """Test that user-update follows changes to the profile."""
    updates = []
    alice.on(events.USER_UPDATE, updates.append)

    await alice.authenticate()
    assert updates[-1].name == "Alice"

    assert await alice.toggle_user_mute("bob") is True
    assert updates[-1].muted == {"bob"}
    assert alice.user_is_muted("bob")


@pytest.mark.asyncio
async def test_session_presence(alice, database):
    """Test that signing in records the session and directory entry."""
    await alice.authenticate()
    session_id = alice.context.session_id

    assert await read(database, f"users/alice/sessions/{session_id}") is True
    assert await read(database, f"user-names-online/alice/{session_id}") == {
        "id": "alice",
        "name": "Alice",
    }


@pytest.mark.asyncio
async def test_sign_out(alice, database):
    """Test that signing out clears presence and identity."""
    await alice.authenticate()
    room_id = await alice.create_room("lobby")
    exits = []
    alice.on(events.ROOM_EXIT, exits.append)

    await alice.sign_out()

    assert exits == [room_id]
    assert alice.user is None
    assert alice.context.session_id is None
    assert alice.context.store.pending_disconnect_writes == {}
    assert await read(database, "users/alice/sessions") is None
    assert await read(database, "user-names-online/alice") is None
    assert await read(database, f"room-users/{room_id}") is None
    assert await read(database, "users/alice/name") == "Alice"


@pytest.mark.asyncio
async def test_set_user_again_replaces_session(alice, bob, database):
    """Test that loading the user again does not stack listeners or presence."""
    await alice.authenticate()
    room_id = await alice.create_room("lobby")
    old_session = alice.context.session_id

    await alice.set_user("alice", "Alice")
    await bob.authenticate()
    notifications = []
    alice.on(events.NOTIFICATION, notifications.append)
    notification_id = await bob.warn_user("alice")
    await alice.wait_idle()

    assert [n.id for n in notifications] == [notification_id]
    assert len(alice.presence.bits) == 2
    assert alice.context.session_id != old_session
    assert list(await read(database, "users/alice/sessions")) == [
        alice.context.session_id
    ]
    assert list(await read(database, "user-names-online/alice")) == [
        alice.context.session_id
    ]
    assert await read(database, f"room-users/{room_id}") is None
    assert alice.joined_rooms == []
