"""
User Directory

Read-only lookups of who is online: the users present in a room, and
the users whose names start with a prefix. Both lists collapse multiple
sessions of the same user into one entry.
"""

import logging
from typing import Dict, List, Optional

from .context import SessionContext
from .schemas import OnlineUser

logger = logging.getLogger(__name__)

# Upper bound for key-range prefix queries.
PREFIX_RANGE_END = "\uf8ff"


def _first_session(sessions) -> Optional[dict]:
    if not isinstance(sessions, dict):
        return None
    for session in sessions.values():
        return session
    return None


class UserDirectory:
    """Online-user queries for one session."""

    def __init__(self, context: SessionContext):
        self._context = context

    async def get_users_by_room(
        self, room_id: str, limit: Optional[int] = None
    ) -> List[OnlineUser]:
        """List users present in a room, optionally only the last `limit`."""
        query = self._context.room_users_ref.child(room_id)
        if limit:
            query = query.limit_to_last(limit)
        snapshot = await query.get()

        users = []
        for user_id, sessions in (snapshot.value or {}).items():
            # One session per user is enough.
            session = _first_session(sessions)
            if session is not None:
                users.append(OnlineUser.from_dict(session, user_id))
        return users

    async def get_users_by_prefix(
        self,
        prefix: str,
        start_at: Optional[str] = None,
        end_at: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[OnlineUser]:
        """
        List online users whose name starts with prefix (case-insensitive).

        Directory keys are lower-cased names, so without explicit bounds
        the lookup is the key range [prefix, prefix + U+F8FF]. start_at or
        end_at replace that range for paging.
        """
        prefix_lower = prefix.lower()
        query = self._context.users_online_ref.order_by_key()
        if start_at:
            query = query.start_at(start_at)
        elif end_at:
            query = query.end_at(end_at)
        elif prefix_lower:
            query = query.start_at(prefix_lower).end_at(prefix_lower + PREFIX_RANGE_END)
        if limit:
            query = query.limit_to_last(limit)
        snapshot = await query.get()

        users: Dict[str, OnlineUser] = {}
        for sessions in (snapshot.value or {}).values():
            session = _first_session(sessions)
            if session is None:
                continue
            user = OnlineUser.from_dict(session)
            if prefix_lower and not user.name.lower().startswith(prefix_lower):
                continue
            users[user.name] = user
        return list(users.values())
