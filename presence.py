import asyncio
from typing import Dict, List, Optional, Tuple

from errors import UsernameTaken
from schemas.chat import User
from logging_config import get_logger

logger = get_logger(__name__)


class PresenceRegistry:
    """Maps live connection ids to authenticated users.

    All reads and writes go through one lock so that user lists and the
    uniqueness check always see a consistent snapshot.
    """

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._lock = asyncio.Lock()

    async def register(self, user: User) -> User:
        """Add a freshly logged-in user; display names must be unique (exact match)."""
        async with self._lock:
            for connection_id, existing in self._users.items():
                if existing.display_name == user.display_name:
                    logger.info(f"Display name {user.display_name} already online on {connection_id}")
                    raise UsernameTaken()
            self._users[user.connection_id] = user
            logger.info(f"User {user.display_name} ({user.user_id}) online on {user.connection_id}")
            return user

    async def upsert_evicting(self, user: User) -> List[str]:
        """Register user for its connection, removing any other connection with the same name.

        Returns the evicted connection ids.
        """
        async with self._lock:
            evicted = [
                cid for cid, existing in self._users.items()
                if existing.display_name == user.display_name and cid != user.connection_id
            ]
            for cid in evicted:
                del self._users[cid]
                logger.info(f"Evicted stale connection {cid} for {user.display_name}")
            self._users[user.connection_id] = user
            return evicted

    async def remove(self, connection_id: str) -> Optional[User]:
        async with self._lock:
            user = self._users.pop(connection_id, None)
        if user:
            logger.info(f"User {user.display_name} ({user.user_id}) offline from {connection_id}")
        return user

    async def get(self, connection_id: str) -> Optional[User]:
        async with self._lock:
            return self._users.get(connection_id)

    async def find_by_user_id(self, user_id: str) -> Optional[User]:
        async with self._lock:
            for user in self._users.values():
                if user.user_id == user_id:
                    return user
        return None

    async def snapshot(self) -> Tuple[User, ...]:
        async with self._lock:
            return tuple(self._users.values())

    async def public_list(self) -> list:
        return [user.public() for user in await self.snapshot()]
