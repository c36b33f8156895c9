"""
Tests for the Messaging Engine

Tests sending and deleting messages and the bounded per-room window of
recent messages.
"""

import pytest

from src.firechat import Message, NotAuthenticatedError, events


def track_window(chat):
    """Mirror the visible window from message-add / message-remove."""
    window = []
    chat.on(events.MESSAGE_ADD, lambda room_id, message: window.append(message))
    chat.on(
        events.MESSAGE_REMOVE,
        lambda room_id, message_id: window.remove(
            next(m for m in window if m.id == message_id)
        ),
    )
    return window


@pytest.mark.asyncio
async def test_send_requires_user(make_client):
    """Test that sending without a user fires auth-required."""
    chat = make_client("carol", "Carol")
    required = []
    chat.on(events.AUTH_REQUIRED, lambda: required.append(True))

    with pytest.raises(NotAuthenticatedError):
        await chat.messaging.send_message("r1", "hello")

    assert required == [True]


@pytest.mark.asyncio
async def test_message_add_payload(alice, bob, clock):
    """Test the message delivered to other room members."""
    room_id = await alice.create_room("general")
    await bob.enter_room(room_id)
    received = []
    bob.on(events.MESSAGE_ADD, lambda rid, message: received.append((rid, message)))

    message_id = await alice.send_message(room_id, "hello", "notice")

    assert received == [
        (
            room_id,
            Message(
                id=message_id,
                user_id="alice",
                name="Alice",
                timestamp=clock.now,
                message="hello",
                type="notice",
            ),
        )
    ]


@pytest.mark.asyncio
async def test_default_message_type(alice):
    """Test that messages default to the default type."""
    room_id = await alice.create_room("general")
    received = []
    alice.on(events.MESSAGE_ADD, lambda rid, message: received.append(message))

    await alice.send_message(room_id, "hi")

    assert received[0].type == "default"


@pytest.mark.asyncio
async def test_room_enter_precedes_messages(alice, bob):
    """Test that room-enter fires before the room's existing messages."""
    room_id = await alice.create_room("general")
    await alice.send_message(room_id, "one")
    await alice.send_message(room_id, "two")
    order = []
    bob.on(events.ROOM_ENTER, lambda room: order.append("enter"))
    bob.on(events.MESSAGE_ADD, lambda rid, message: order.append(message.message))

    await bob.enter_room(room_id)

    assert order == ["enter", "one", "two"]


@pytest.mark.asyncio
async def test_window_slides(make_client, clock):
    """Test that only the most recent messages stay observed."""
    alice = make_client("alice", "Alice", num_max_messages=3)
    room_id = await alice.create_room("general")
    window = track_window(alice)
    removed = []
    alice.on(events.MESSAGE_REMOVE, lambda rid, message_id: removed.append(message_id))

    sent = []
    for i in range(4):
        clock.advance(1000)
        sent.append(await alice.send_message(room_id, f"message {i}"))

    assert removed == [sent[0]]
    assert [m.id for m in window] == sent[1:]
    assert [m.message for m in window] == ["message 1", "message 2", "message 3"]


@pytest.mark.asyncio
async def test_late_joiner_sees_last_messages(alice, make_client, clock):
    """Test that entering a busy room delivers only the newest messages."""
    room_id = await alice.create_room("general")
    for i in range(5):
        clock.advance(1000)
        await alice.send_message(room_id, f"message {i}")

    bob = make_client("bob", "Bob", num_max_messages=3)
    window = track_window(bob)
    await bob.enter_room(room_id)

    assert [m.message for m in window] == ["message 2", "message 3", "message 4"]
    timestamps = [m.timestamp for m in window]
    assert timestamps == sorted(timestamps)


@pytest.mark.asyncio
async def test_delete_message(alice, bob):
    """Test that deleting a message notifies room members."""
    room_id = await alice.create_room("general")
    await bob.enter_room(room_id)
    removed = []
    bob.on(events.MESSAGE_REMOVE, lambda rid, message_id: removed.append((rid, message_id)))
    message_id = await alice.send_message(room_id, "oops")

    await alice.delete_message(room_id, message_id)

    assert removed == [(room_id, message_id)]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_fail_sender(alice, bob):
    """Test that a raising message-add callback in one client stays local."""
    room_id = await alice.create_room("general")
    await bob.enter_room(room_id)

    def broken(room_id, message):
        raise RuntimeError("ui bug")

    bob.on(events.MESSAGE_ADD, broken)
    received = []
    alice.on(events.MESSAGE_ADD, lambda rid, message: received.append(message.id))

    message_id = await alice.send_message(room_id, "still works")

    assert received == [message_id]
