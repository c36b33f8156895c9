"""
Tests for the In-Memory Store

Covers the store semantics the chat core relies on:
- server timestamps, pruning of empty nodes
- priority ordering and bounded child subscriptions
- transactions, on-disconnect writes and connection state
- access revocation and push key ordering
"""

import pytest

from src.firechat import PermissionDeniedError
from src.firechat.store import (
    ABORT_TRANSACTION,
    SERVER_TIMESTAMP,
    MemoryStore,
)


@pytest.mark.asyncio
async def test_set_resolves_server_timestamp(database, clock):
    """Test that the server timestamp placeholder becomes the store clock."""
    store = MemoryStore(database)
    ref = store.reference("a/b")

    await ref.set({"at": SERVER_TIMESTAMP, "x": 1})

    snapshot = await ref.get()
    assert snapshot.key == "b"
    assert snapshot.value == {"at": clock.now, "x": 1}


@pytest.mark.asyncio
async def test_remove_prunes_empty_parents(database):
    """Test that removing the last child removes its empty parents."""
    store = MemoryStore(database)
    await store.reference("a/b/c").set(1)

    await store.reference("a/b/c").remove()

    assert (await store.reference("a").get()).value is None
    assert not (await store.reference("a/b").get()).exists()


@pytest.mark.asyncio
async def test_update_keeps_other_children(database):
    """Test that update only touches the given children."""
    store = MemoryStore(database)
    ref = store.reference("invite")
    await ref.set({"id": "i1", "roomId": "r1"})

    await ref.update({"status": "declined", "toUserName": "Bob"})

    assert (await ref.get()).value == {
        "id": "i1",
        "roomId": "r1",
        "status": "declined",
        "toUserName": "Bob",
    }


@pytest.mark.asyncio
async def test_limit_to_last_orders_by_priority(database):
    """Test that bounded child subscriptions follow priority order."""
    store = MemoryStore(database)
    ref = store.reference("messages")
    for key, priority in (("k0", 3), ("k1", 1), ("k2", 2)):
        await ref.child(key).set_with_priority({"p": priority}, priority)

    added, removed = [], []
    query = ref.limit_to_last(2)
    query.on("child_added", lambda snapshot: added.append(snapshot.key))
    query.on("child_removed", lambda snapshot: removed.append(snapshot.key))

    assert added == ["k2", "k0"]

    await ref.child("k3").set_with_priority({"p": 4}, 4)

    assert added == ["k2", "k0", "k3"]
    assert removed == ["k2"]


@pytest.mark.asyncio
async def test_value_listener_fires_only_on_change(database):
    """Test that value listeners skip writes that change nothing."""
    store = MemoryStore(database)
    ref = store.reference("flag")
    values = []
    ref.on("value", lambda snapshot: values.append(snapshot.value))

    await ref.set(1)
    await ref.set(1)

    assert values == [None, 1]


@pytest.mark.asyncio
async def test_child_changed_events(database):
    """Test that changed children are reported with their new value."""
    store = MemoryStore(database)
    ref = store.reference("notifications")
    await ref.child("n1").set({"read": False, "type": "warning"})
    changed = []
    ref.on("child_changed", lambda snapshot: changed.append(snapshot.value))

    await ref.child("n1").child("read").set(True)

    assert changed == [{"read": True, "type": "warning"}]


@pytest.mark.asyncio
async def test_listeners_see_writes_from_other_connections(database):
    """Test that connections sharing a database observe each other."""
    writer = MemoryStore(database)
    reader = MemoryStore(database)
    seen = []
    reader.reference("rooms").on("child_added", lambda s: seen.append(s.key))

    await writer.reference("rooms/r1").set({"name": "General"})

    assert seen == ["r1"]


@pytest.mark.asyncio
async def test_transaction_commit_and_abort(database):
    """Test committed, aborted and deleting transactions."""
    store = MemoryStore(database)
    ref = store.reference("counter")
    await ref.set(5)

    aborted = await ref.transaction(lambda current: ABORT_TRANSACTION)
    assert aborted.committed is False
    assert aborted.snapshot.value == 5

    committed = await ref.transaction(lambda current: (current or 0) + 1)
    assert committed.committed is True
    assert committed.snapshot.value == 6

    deleted = await ref.transaction(lambda current: None)
    assert deleted.committed is True
    assert (await ref.get()).value is None


@pytest.mark.asyncio
async def test_on_disconnect_fires_once_per_connection(database):
    """Test that on-disconnect writes run on drop and are then forgotten."""
    store = MemoryStore(database)
    observer = MemoryStore(database)
    ref = store.reference("presence/alice")
    await ref.on_disconnect().set("gone")
    await ref.set("here")

    store.go_offline()
    assert (await observer.reference("presence/alice").get()).value == "gone"

    store.go_online()
    await ref.set("here")
    store.go_offline()
    assert (await observer.reference("presence/alice").get()).value == "here"


@pytest.mark.asyncio
async def test_on_disconnect_cancel(database):
    """Test that cancelled on-disconnect writes do not run."""
    store = MemoryStore(database)
    ref = store.reference("presence/alice")
    await ref.on_disconnect().set(None)
    await ref.set("here")

    await ref.on_disconnect().cancel()
    store.go_offline()

    assert (await ref.get()).value == "here"
    assert store.pending_disconnect_writes == {}


def test_connected_listener_tracks_connection(database):
    """Test that .info/connected reports connection changes."""
    store = MemoryStore(database)
    values = []
    store.reference(".info/connected").on(
        "value", lambda snapshot: values.append(snapshot.value)
    )

    store.go_offline()
    store.go_online()

    assert values == [True, False, True]


@pytest.mark.asyncio
async def test_revoke_access_cancels_listeners_and_writes(database):
    """Test that revoked paths cancel listeners and reject writes."""
    store = MemoryStore(database)
    errors = []
    store.reference("secret").on("child_added", lambda s: None, errors.append)

    store.revoke_access("secret")

    assert len(errors) == 1
    assert isinstance(errors[0], PermissionDeniedError)
    with pytest.raises(PermissionDeniedError):
        await store.reference("secret/x").set(1)
    with pytest.raises(PermissionDeniedError):
        await store.reference("secret").get()


def test_subscribe_on_revoked_path_cancels_immediately(database):
    """Test that listening on a revoked path cancels right away."""
    store = MemoryStore(database)
    store.revoke_access("secret")
    errors = []

    store.reference("secret/room").on("child_added", lambda s: None, errors.append)

    assert len(errors) == 1


def test_push_keys_are_unique_and_ordered(database):
    """Test that push keys sort in creation order, even within one ms."""
    store = MemoryStore(database)
    ref = store.reference("messages/r1")

    keys = [ref.push().key for _ in range(50)]

    assert all(len(key) == 20 for key in keys)
    assert len(set(keys)) == 50
    assert keys == sorted(keys)


@pytest.mark.asyncio
async def test_key_range_query(database):
    """Test inclusive start_at/end_at bounds over keys."""
    store = MemoryStore(database)
    ref = store.reference("names")
    for name in ("bob", "alice", "al", "albert", "amy"):
        await ref.child(name).set(True)

    snapshot = await ref.order_by_key().start_at("al").end_at("al\uf8ff").get()

    assert list(snapshot.value) == ["al", "albert", "alice"]


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_writer(database, caplog):
    """Test that a raising callback is logged and other listeners still run."""
    writer = MemoryStore(database)
    reader = MemoryStore(database)
    seen = []

    def broken(snapshot):
        raise RuntimeError("listener bug")

    reader.reference("rooms").on("child_added", broken)
    reader.reference("rooms").on("child_added", lambda s: seen.append(s.key))

    await writer.reference("rooms/r1").set({"name": "General"})

    assert seen == ["r1"]
    assert (await writer.reference("rooms/r1/name").get()).value == "General"
    assert any(record.exc_info for record in caplog.records)


@pytest.mark.asyncio
async def test_revoke_access_is_database_wide(database):
    """Test that revoking through one connection affects every connection."""
    first = MemoryStore(database)
    second = MemoryStore(database)
    errors = []
    second.reference("secret").on("value", lambda s: None, errors.append)

    first.revoke_access("secret")

    assert len(errors) == 1
    with pytest.raises(PermissionDeniedError):
        await second.reference("secret").set(1)
