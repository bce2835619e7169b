import asyncio
import hmac
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from backend import RedisBackend
from constants import PUBLIC_ROOM
from errors import RoomUnavailable, StoreUnavailable, WrongPassword
from schemas.rooms import RoomSummary
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class RoomMeta:
    name: str
    password: str = ""
    members: Set[str] = field(default_factory=set)

    @property
    def has_password(self) -> bool:
        return self.password != ""

    def accepts(self, password: Optional[str]) -> bool:
        if not self.has_password:
            return True
        return hmac.compare_digest(self.password.encode(), (password or "").encode())


class RoomDirectory:
    """In-memory mirror of rooms and their member sets, backed by the store.

    The mirror is the source of truth for membership checks and password
    verification. Store writes happen outside the lock; the mirror converges on
    whatever the store accepted.
    """

    def __init__(self, backend: RedisBackend):
        self.backend = backend
        self._rooms: Dict[str, RoomMeta] = {PUBLIC_ROOM: RoomMeta(PUBLIC_ROOM)}
        # Names with a deletion in flight, and how many deletions each name has seen
        self._deleting: Set[str] = set()
        self._delete_epochs: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def load(self):
        """Reset to the public room and mirror every durable room."""
        stored = await self.backend.list_rooms()
        async with self._lock:
            self._rooms = {PUBLIC_ROOM: RoomMeta(PUBLIC_ROOM)}
            for name, password in stored.items():
                if name == PUBLIC_ROOM:
                    continue
                self._rooms[name] = RoomMeta(name, password or "")
        logger.info(f"Loaded {len(self._rooms)} rooms from store")

    async def get(self, name: str) -> Optional[RoomMeta]:
        async with self._lock:
            return self._rooms.get(name)

    async def ensure_room(self, name: str, password: str = "") -> RoomMeta:
        """Create the room if absent. Concurrent first calls converge on the stored row."""
        async with self._lock:
            room = self._rooms.get(name)
            if room is not None:
                return room

        stored_password = await self.backend.create_room_if_absent(name, password or "")

        async with self._lock:
            room = self._rooms.get(name)
            if room is None:
                room = RoomMeta(name, stored_password)
                self._rooms[name] = room
                logger.info(f"Room {name} created (protected={room.has_password})")
            return room

    async def join_room(self, user_id: str, name: str, password: Optional[str] = "") -> RoomMeta:
        async with self._lock:
            if name in self._deleting:
                raise RoomUnavailable()
            epoch = self._delete_epochs.get(name, 0)
            room = self._rooms.get(name)
        if room is None:
            # The mirror may have lost an entry; the store decides whether the room exists
            stored_password = await self.backend.get_room_password(name)
            if stored_password is None:
                room = await self.ensure_room(name, password or "")
            else:
                room = await self._mirror(name, stored_password)

        if not room.accepts(password):
            logger.warning(f"Wrong password for room {name} from user {user_id}")
            raise WrongPassword()

        async with self._lock:
            room.members.add(user_id)
        await self.backend.add_room_member(name, user_id)

        # A deletion that started after this join began may have purged the room
        # before or after the membership write landed
        async with self._lock:
            intact = (
                name not in self._deleting
                and self._delete_epochs.get(name, 0) == epoch
                and self._rooms.get(name) is room
            )
            if not intact:
                room.members.discard(user_id)
        if not intact:
            await self.backend.remove_room_member(name, user_id)
            if await self.backend.get_room_password(name) is None:
                async with self._lock:
                    if self._rooms.get(name) is room:
                        del self._rooms[name]
            logger.info(f"Join of {user_id} to {name} undone, room was deleted meanwhile")
            raise RoomUnavailable()

        logger.info(f"User {user_id} joined room {name}")
        return room

    async def add_member(self, name: str, user_id: str) -> RoomMeta:
        """Add a member to an existing room without a password check."""
        room = await self.ensure_room(name)
        async with self._lock:
            room.members.add(user_id)
        await self.backend.add_room_member(name, user_id)
        return room

    async def restore_member(self, name: str, user_id: str) -> Optional[RoomMeta]:
        """Re-add a durable member, recreating a lost entry with an open password.

        Returns None for a room that is being deleted.
        """
        async with self._lock:
            if name in self._deleting:
                return None
            room = self._rooms.get(name)
            if room is None:
                room = RoomMeta(name)
                self._rooms[name] = room
                logger.warning(f"Room {name} missing from memory, restored as open room")
            room.members.add(user_id)
            return room

    async def remove_member_everywhere(self, user_id: str):
        async with self._lock:
            for room in self._rooms.values():
                room.members.discard(user_id)

    async def members(self, name: str) -> Set[str]:
        async with self._lock:
            room = self._rooms.get(name)
            return set(room.members) if room else set()

    async def delete_room(self, name: str) -> bool:
        if name == PUBLIC_ROOM:
            logger.warning("Refusing to delete the public room")
            return False
        async with self._lock:
            self._deleting.add(name)
            self._delete_epochs[name] = self._delete_epochs.get(name, 0) + 1
            removed = self._rooms.pop(name, None)
        try:
            await self.backend.delete_room(name)
        except StoreUnavailable:
            # The durable row survived, so the mirror must keep it
            async with self._lock:
                if removed is not None:
                    self._rooms.setdefault(name, removed)
            raise
        finally:
            async with self._lock:
                self._deleting.discard(name)
        existed = removed is not None
        logger.info(f"Room {name} deleted (was mirrored={existed})")
        return existed

    async def list_rooms(self) -> List[RoomSummary]:
        async with self._lock:
            rooms = list(self._rooms.values())
        rooms.sort(key=lambda room: room.name != PUBLIC_ROOM)
        return [RoomSummary(name=room.name, has_password=room.has_password) for room in rooms]

    async def _mirror(self, name: str, password: str) -> RoomMeta:
        async with self._lock:
            room = self._rooms.get(name)
            if room is None:
                room = RoomMeta(name, password or "")
                self._rooms[name] = room
            return room
