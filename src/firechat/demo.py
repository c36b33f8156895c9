"""
Demo Script for the Firechat Client

Runs a scripted two-user session against an in-memory store:
    1. alice signs in, creates a room and invites bob
    2. bob accepts the invite from his room-invite callback
    3. both exchange messages; alice drops and regains her connection
    4. alice, a moderator, warns and suspends bob

Usage:
    firechat-demo
    python -m firechat.main --messages 10
"""

import logging
from typing import Optional

from .auth import AuthData, StaticAuthenticator
from .client import Firechat
from .config import FirechatOptions
from .store import MemoryDatabase, MemoryStore

logger = logging.getLogger(__name__)


def _log_events(chat: Firechat, label: str) -> None:
    chat.on(
        "room-enter",
        lambda room: logger.info(f"[{label}] entered {room['name']}"),
    )
    chat.on("room-exit", lambda room_id: logger.info(f"[{label}] left {room_id}"))
    chat.on(
        "message-add",
        lambda room_id, message: logger.info(
            f"[{label}] {message.name}: {message.message}"
        ),
    )
    chat.on(
        "notification",
        lambda notification: logger.info(
            f"[{label}] notification: "
            f"{notification.notification_type} {notification.data}"
        ),
    )
    chat.on(
        "room-invite-response",
        lambda invite: logger.info(
            f"[{label}] {invite.to_user_name} {invite.status} the invite"
        ),
    )


async def run_demo(options: Optional[FirechatOptions] = None) -> None:
    options = options or FirechatOptions()
    database = MemoryDatabase()
    await MemoryStore(database).reference("moderators/alice").set(True)

    alice_store = MemoryStore(database)
    alice = Firechat(
        alice_store,
        StaticAuthenticator(AuthData("alice", "Alice")),
        options,
    )
    bob = Firechat(
        MemoryStore(database),
        StaticAuthenticator(AuthData("bob", "Bob"), signed_in=False),
        options,
    )
    _log_events(alice, "alice")
    _log_events(bob, "bob")

    logger.info("=" * 60)
    logger.info("Firechat Demo")
    logger.info("=" * 60)

    await bob.authenticate()
    bob.on("room-invite", lambda invite: bob.context.spawn(bob.accept_invite(invite.id)))

    room_id = await alice.create_room("general")
    await alice.invite_user("bob", room_id)
    await bob.wait_idle()

    for i in range(3):
        await alice.send_message(room_id, f"Hello #{i + 1} from Alice")
    await bob.send_message(room_id, "Hi Alice!")

    users = await alice.get_users_by_room(room_id)
    names = ", ".join(user.name for user in users)
    logger.info(f"In {room_id}: {names}")

    logger.info("Simulating a network blip for alice...")
    alice_store.go_offline()
    online = await alice.get_users_by_prefix("")
    logger.info(f"Users online: {online}")
    alice_store.go_online()
    await alice.wait_idle()
    online = await alice.get_users_by_prefix("")
    logger.info(f"Users online: {online}")

    if alice.user_is_moderator():
        await alice.warn_user("bob")
        await alice.suspend_user("bob", 60)
        await bob.wait_idle()

    await bob.sign_out()
    await alice.sign_out()
    await alice.close()
    await bob.close()

    logger.info("=" * 60)
    logger.info("Demo completed successfully!")
    logger.info("=" * 60)
