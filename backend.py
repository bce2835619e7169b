import functools
from datetime import datetime, timezone
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_DB
from errors import StoreUnavailable
from redis_keys import (
    REDIS_SESSION_KEY, REDIS_ROOMS_KEY, REDIS_ROOM_MEMBERS_KEY, REDIS_USER_ROOMS_KEY,
    REDIS_MESSAGE_ID_KEY, REDIS_MESSAGE_KEY, REDIS_ROOM_MESSAGES_KEY,
    REDIS_PRIVATE_MESSAGES_KEY, REDIS_USER_MESSAGES_KEY, private_pair,
)
from logging_config import get_logger

logger = get_logger(__name__)


def store_operation(func):
    """Report Redis failures as StoreUnavailable after logging them."""
    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except RedisError as e:
            logger.error(f"Redis error during {func.__name__}: {e}", exc_info=True)
            raise StoreUnavailable(f"{func.__name__} failed: {e}") from e
    return wrapper


class RedisBackend:
    """Durable store for sessions, rooms, room memberships and messages.

    Pure persistence: callers decide what is allowed, this class only reads and writes.
    """

    def __init__(self, redis_client):
        self.redis_client = redis_client

    @store_operation
    async def ping(self) -> bool:
        return await self.redis_client.ping()

    # --- sessions ---

    @store_operation
    async def create_session(self, token: str, connection_id: str, username: str, user_id: str):
        logger.debug(f"Persisting session for user {user_id} ({username})")
        await self.redis_client.hset(REDIS_SESSION_KEY.format(token=token), mapping={
            "token": token,
            "connection_id": connection_id,
            "username": username,
            "user_id": user_id,
        })

    @store_operation
    async def get_session(self, token: str) -> Optional[dict]:
        session = await self.redis_client.hgetall(REDIS_SESSION_KEY.format(token=token))
        if not session:
            logger.debug("Session lookup missed")
            return None
        return session

    @store_operation
    async def update_session_connection(self, token: str, connection_id: str) -> bool:
        key = REDIS_SESSION_KEY.format(token=token)
        # Only touch live rows; a concurrent logout may have removed it
        if not await self.redis_client.exists(key):
            return False
        await self.redis_client.hset(key, "connection_id", connection_id)
        return True

    @store_operation
    async def delete_session(self, token: str):
        deleted = await self.redis_client.delete(REDIS_SESSION_KEY.format(token=token))
        logger.debug(f"Session deleted: {bool(deleted)}")

    # --- rooms ---

    @store_operation
    async def create_room_if_absent(self, room_name: str, password: str) -> str:
        """Insert-or-ignore a room. Returns the password actually stored."""
        created = await self.redis_client.hsetnx(REDIS_ROOMS_KEY, room_name, password or "")
        stored = await self.redis_client.hget(REDIS_ROOMS_KEY, room_name)
        if created:
            logger.info(f"Room {room_name} persisted")
        return stored if stored is not None else (password or "")

    @store_operation
    async def get_room_password(self, room_name: str) -> Optional[str]:
        return await self.redis_client.hget(REDIS_ROOMS_KEY, room_name)

    @store_operation
    async def list_rooms(self) -> dict:
        return await self.redis_client.hgetall(REDIS_ROOMS_KEY)

    @store_operation
    async def delete_room(self, room_name: str):
        """Remove a room row together with its memberships and messages."""
        logger.info(f"Deleting room {room_name} from store")
        members_key = REDIS_ROOM_MEMBERS_KEY.format(room=room_name)
        messages_key = REDIS_ROOM_MESSAGES_KEY.format(room=room_name)

        members = await self.redis_client.smembers(members_key)
        message_ids = await self.redis_client.zrange(messages_key, 0, -1)
        authors = await self._message_authors(message_ids)

        async with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.hdel(REDIS_ROOMS_KEY, room_name)
            for user_id in members:
                pipe.srem(REDIS_USER_ROOMS_KEY.format(user_id=user_id), room_name)
            pipe.delete(members_key)
            for message_id, author in zip(message_ids, authors):
                pipe.delete(REDIS_MESSAGE_KEY.format(message_id=message_id))
                if author:
                    pipe.srem(REDIS_USER_MESSAGES_KEY.format(user_id=author), message_id)
            pipe.delete(messages_key)
            await pipe.execute()
        logger.debug(f"Room {room_name} deleted: members={len(members)}, messages={len(message_ids)}")

    # --- memberships ---

    @store_operation
    async def add_room_member(self, room_name: str, user_id: str) -> bool:
        async with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.sadd(REDIS_ROOM_MEMBERS_KEY.format(room=room_name), user_id)
            pipe.sadd(REDIS_USER_ROOMS_KEY.format(user_id=user_id), room_name)
            added, _ = await pipe.execute()
        if added:
            logger.debug(f"Membership persisted: {user_id} in {room_name}")
        return bool(added)

    @store_operation
    async def get_user_rooms(self, user_id: str) -> set:
        return await self.redis_client.smembers(REDIS_USER_ROOMS_KEY.format(user_id=user_id))

    @store_operation
    async def remove_room_member(self, room_name: str, user_id: str):
        async with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.srem(REDIS_ROOM_MEMBERS_KEY.format(room=room_name), user_id)
            pipe.srem(REDIS_USER_ROOMS_KEY.format(user_id=user_id), room_name)
            await pipe.execute()
        logger.debug(f"Membership removed: {user_id} from {room_name}")

    @store_operation
    async def delete_user_memberships(self, user_id: str):
        user_rooms_key = REDIS_USER_ROOMS_KEY.format(user_id=user_id)
        rooms = await self.redis_client.smembers(user_rooms_key)
        async with self.redis_client.pipeline(transaction=True) as pipe:
            for room_name in rooms:
                pipe.srem(REDIS_ROOM_MEMBERS_KEY.format(room=room_name), user_id)
            pipe.delete(user_rooms_key)
            await pipe.execute()
        logger.debug(f"Removed {len(rooms)} memberships for user {user_id}")

    # --- messages ---

    @store_operation
    async def append_message(
        self,
        from_user_id: str,
        from_user_name: str,
        content: str,
        room: Optional[str] = None,
        to_user_id: Optional[str] = None,
    ) -> dict:
        """Append a message and return the stored record."""
        if (room is None) == (to_user_id is None):
            raise ValueError("A message targets exactly one of room or to_user_id")

        now = datetime.now(timezone.utc)
        message_id = await self.redis_client.incr(REDIS_MESSAGE_ID_KEY)
        record = {
            "id": message_id,
            "from_user_id": from_user_id,
            "from_user_name": from_user_name,
            "to_user_id": to_user_id,
            "room": room,
            "content": content,
            "is_private": to_user_id is not None,
            "timestamp": now.isoformat(),
        }
        if to_user_id is not None:
            index_key = REDIS_PRIVATE_MESSAGES_KEY.format(pair=private_pair(from_user_id, to_user_id))
        else:
            index_key = REDIS_ROOM_MESSAGES_KEY.format(room=room)

        async with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.hset(REDIS_MESSAGE_KEY.format(message_id=message_id), mapping={
                "id": str(message_id),
                "from_user_id": from_user_id,
                "from_user_name": from_user_name,
                "to_user_id": to_user_id or "",
                "room": room or "",
                "content": content,
                "is_private": "1" if record["is_private"] else "0",
                "timestamp": record["timestamp"],
            })
            pipe.zadd(index_key, {str(message_id): now.timestamp()})
            pipe.sadd(REDIS_USER_MESSAGES_KEY.format(user_id=from_user_id), str(message_id))
            await pipe.execute()
        logger.debug(f"Message {message_id} stored under {index_key}")
        return record

    @store_operation
    async def get_room_history(self, room_name: str) -> list:
        message_ids = await self.redis_client.zrange(REDIS_ROOM_MESSAGES_KEY.format(room=room_name), 0, -1)
        messages = await self._load_messages(message_ids)
        return [m for m in messages if not m["is_private"]]

    @store_operation
    async def get_private_history(self, user_id: str, other_user_id: str) -> list:
        key = REDIS_PRIVATE_MESSAGES_KEY.format(pair=private_pair(user_id, other_user_id))
        message_ids = await self.redis_client.zrange(key, 0, -1)
        return await self._load_messages(message_ids)

    @store_operation
    async def delete_messages_by_author(self, user_id: str) -> int:
        """Purge every message written by user_id, including its index entries."""
        user_messages_key = REDIS_USER_MESSAGES_KEY.format(user_id=user_id)
        message_ids = list(await self.redis_client.smembers(user_messages_key))
        messages = await self._load_messages(message_ids)

        async with self.redis_client.pipeline(transaction=True) as pipe:
            for message in messages:
                message_id = str(message["id"])
                if message["is_private"]:
                    pair = private_pair(message["from_user_id"], message["to_user_id"])
                    pipe.zrem(REDIS_PRIVATE_MESSAGES_KEY.format(pair=pair), message_id)
                else:
                    pipe.zrem(REDIS_ROOM_MESSAGES_KEY.format(room=message["room"]), message_id)
            for message_id in message_ids:
                pipe.delete(REDIS_MESSAGE_KEY.format(message_id=message_id))
            pipe.delete(user_messages_key)
            await pipe.execute()
        logger.info(f"Purged {len(message_ids)} messages authored by {user_id}")
        return len(message_ids)

    async def _load_messages(self, message_ids) -> list:
        if not message_ids:
            return []
        async with self.redis_client.pipeline(transaction=False) as pipe:
            for message_id in message_ids:
                pipe.hgetall(REDIS_MESSAGE_KEY.format(message_id=message_id))
            rows = await pipe.execute()
        # zrange already yields score order; missing rows were purged concurrently
        return [self._decode_message(row) for row in rows if row]

    async def _message_authors(self, message_ids) -> list:
        if not message_ids:
            return []
        async with self.redis_client.pipeline(transaction=False) as pipe:
            for message_id in message_ids:
                pipe.hget(REDIS_MESSAGE_KEY.format(message_id=message_id), "from_user_id")
            return await pipe.execute()

    @staticmethod
    def _decode_message(row: dict) -> dict:
        return {
            "id": int(row["id"]),
            "from_user_id": row["from_user_id"],
            "from_user_name": row["from_user_name"],
            "to_user_id": row.get("to_user_id") or None,
            "room": row.get("room") or None,
            "content": row.get("content", ""),
            "is_private": row.get("is_private") == "1",
            "timestamp": row["timestamp"],
        }


redis_client = aioredis.Redis(
    host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB, decode_responses=True
)
redis_backend = RedisBackend(redis_client)
