"""
Tests for the Room Coordinator

Tests creating, entering and leaving rooms, loss of access to a room's
messages, and resuming a session.
"""

import asyncio

import pytest

from src.firechat import MemoryStore, RoomState, events
from src.firechat.store.memory import MemoryReference


async def read(database, path):
    return (await MemoryStore(database).reference(path).get()).value


def record_events(chat, *names):
    seen = []
    for name in names:
        chat.on(name, lambda *args, name=name: seen.append((name,) + args))
    return seen


@pytest.mark.asyncio
async def test_create_room_enters_it(alice, database, clock):
    """Test that a new room is stored, entered and announced."""
    seen = record_events(alice, events.ROOM_ENTER)

    room_id = await alice.create_room("general")

    room = await alice.get_room(room_id)
    assert room.id == room_id
    assert room.name == "general"
    assert room.type == "public"
    assert room.created_by_user_id == "alice"
    assert room.created_at == clock.now
    assert room.authorized_users is None
    assert seen == [(events.ROOM_ENTER, {"id": room_id, "name": "general"})]
    assert alice.joined_rooms == [room_id]
    assert alice.context.rooms[room_id] is RoomState.JOINED


@pytest.mark.asyncio
async def test_private_room_authorizes_creator(alice):
    """Test that a private room starts with its creator authorized."""
    room_id = await alice.create_room("secret", "private")

    room = await alice.get_room(room_id)
    assert room.is_private
    assert room.authorized_users == {"alice"}


@pytest.mark.asyncio
async def test_enter_records_membership_and_presence(alice, bob, database):
    """Test the records written when a user enters a room."""
    room_id = await alice.create_room("general")

    await bob.enter_room(room_id)

    session_id = bob.context.session_id
    assert await read(database, f"users/bob/rooms/{room_id}") == {
        "id": room_id,
        "name": "general",
        "active": True,
    }
    assert await read(database, f"room-users/{room_id}/bob/{session_id}") == {
        "id": "bob",
        "name": "Bob",
    }


@pytest.mark.asyncio
async def test_enter_room_is_idempotent(alice, bob):
    """Test that entering a joined room, even concurrently, fires once."""
    room_id = await alice.create_room("general")
    seen = record_events(bob, events.ROOM_ENTER)

    await asyncio.gather(bob.enter_room(room_id), bob.enter_room(room_id))
    await bob.enter_room(room_id)

    assert len(seen) == 1
    assert bob.joined_rooms == [room_id]
    assert len(bob.context.room_subscriptions[room_id]) == 2


@pytest.mark.asyncio
async def test_enter_missing_room_is_silent(alice, database):
    """Test that unknown or unnamed rooms are ignored."""
    await MemoryStore(database).reference("room-metadata/nameless").set(
        {"type": "public"}
    )
    seen = record_events(alice, events.ROOM_ENTER, events.ROOM_EXIT)

    await alice.enter_room("does-not-exist")
    await alice.enter_room("nameless")

    assert seen == []
    assert alice.joined_rooms == []


@pytest.mark.asyncio
async def test_leave_room(alice, bob, database):
    """Test that leaving clears presence, membership and the stream."""
    room_id = await alice.create_room("general")
    await bob.enter_room(room_id)
    seen = record_events(bob, events.ROOM_EXIT, events.MESSAGE_ADD)

    await bob.leave_room(room_id)
    await alice.send_message(room_id, "anyone?")

    assert seen == [(events.ROOM_EXIT, room_id)]
    assert bob.joined_rooms == []
    assert room_id not in bob.context.room_subscriptions
    assert await read(database, f"users/bob/rooms/{room_id}") is None
    assert await read(database, f"room-users/{room_id}/bob") is None
    assert not any(
        path.startswith("room-users/")
        for path in bob.context.store.pending_disconnect_writes
    )


@pytest.mark.asyncio
async def test_lost_access_leaves_room(alice, bob):
    """Test that a cancelled message stream makes the user leave."""
    room_id = await alice.create_room("secret", "private")
    await bob.enter_room(room_id)
    seen = record_events(bob, events.ROOM_EXIT)

    bob.context.store.revoke_access(f"room-messages/{room_id}")
    assert room_id not in bob.joined_rooms

    await bob.wait_idle()
    await alice.wait_idle()

    assert seen == [(events.ROOM_EXIT, room_id)]
    assert room_id not in bob.context.room_subscriptions


@pytest.mark.asyncio
async def test_no_access_on_entry_leaves_room(alice, bob):
    """Test that a stream cancelled at subscribe time also leaves."""
    room_id = await alice.create_room("secret", "private")
    await alice.wait_idle()
    bob.context.store.revoke_access(f"room-messages/{room_id}")
    await alice.wait_idle()
    seen = record_events(bob, events.ROOM_ENTER, events.ROOM_EXIT)

    await bob.enter_room(room_id)
    await bob.wait_idle()

    assert [name for name, *_ in seen] == [events.ROOM_ENTER, events.ROOM_EXIT]
    assert bob.joined_rooms == []


@pytest.mark.asyncio
async def test_resume_session(alice, make_client, database):
    """Test re-entering recorded rooms, tolerating failures."""
    first = await alice.create_room("first")
    second = await alice.create_room("second")
    store = MemoryStore(database)
    await store.reference("users/alice/rooms/broken").set(
        {"id": "broken", "name": "Broken", "active": True}
    )
    await store.reference("room-metadata/broken").set({"name": "Broken"})
    store.revoke_access("room-metadata/broken")

    again = make_client("alice", "Alice")
    rooms = await again.resume_session()

    assert set(rooms) == {first, second, "broken"}
    assert sorted(again.joined_rooms) == sorted([first, second])


@pytest.mark.asyncio
async def test_resume_session_without_rooms(alice):
    """Test resuming when the user has no memberships."""
    assert await alice.resume_session() == {}
    assert alice.joined_rooms == []


@pytest.mark.asyncio
async def test_room_list(alice):
    """Test listing rooms."""
    assert await alice.get_room_list() == []

    first = await alice.create_room("first")
    second = await alice.create_room("second")

    rooms = await alice.get_room_list()
    assert {room.id for room in rooms} == {first, second}
    assert {room.name for room in rooms} == {"first", "second"}


@pytest.mark.asyncio
async def test_get_missing_room(alice):
    """Test that looking up an unknown room returns None."""
    assert await alice.get_room("nope") is None


@pytest.mark.asyncio
async def test_leave_during_enter_leaves_no_presence(alice, bob, database, monkeypatch):
    """Test that leaving while an enter is still writing undoes the enter."""
    room_id = await alice.create_room("general")
    await bob.authenticate()

    original_set = MemoryReference.set

    async def slow_set(self, value):
        await asyncio.sleep(0)
        await original_set(self, value)

    monkeypatch.setattr(MemoryReference, "set", slow_set)

    entering = asyncio.create_task(bob.enter_room(room_id))
    await asyncio.sleep(0)
    await bob.leave_room(room_id)
    await entering

    store = bob.context.store
    assert bob.joined_rooms == []
    assert not any(path.startswith("room-users/") for path in bob.presence.bits)
    assert not any(
        path.startswith("room-users/") for path in store.pending_disconnect_writes
    )
    assert await read(database, f"users/bob/rooms/{room_id}") is None

    store.go_offline()
    store.go_online()
    await bob.wait_idle()

    assert set(await read(database, f"room-users/{room_id}")) == {"alice"}
