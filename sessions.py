import secrets
import uuid

from backend import RedisBackend
from connection_manager import ConnectionManager
from constants import ADMIN_USERNAME, PUBLIC_ROOM
from errors import InvalidSession, InvalidUsername, StoreUnavailable, Unauthorized
from presence import PresenceRegistry
from room_directory import RoomDirectory
from schemas.chat import User
from logging_config import get_logger

logger = get_logger(__name__)


def is_admin_name(display_name: str) -> bool:
    return display_name.lower() == ADMIN_USERNAME.lower()


class SessionCoordinator:
    """Login, session resumption, logout and disconnect.

    Orchestrates the presence registry, room directory, store and transport.
    Display name uniqueness is exact-match while the admin check is
    case-insensitive.
    """

    def __init__(
        self,
        backend: RedisBackend,
        presence: PresenceRegistry,
        rooms: RoomDirectory,
        connections: ConnectionManager,
    ):
        self.backend = backend
        self.presence = presence
        self.rooms = rooms
        self.connections = connections

    async def login(self, connection_id: str, display_name: str) -> User:
        display_name = (display_name or "").strip()
        if not display_name:
            raise InvalidUsername()

        user = User(
            connection_id=connection_id,
            display_name=display_name,
            user_id=str(uuid.uuid4()),
            session_token=secrets.token_urlsafe(32),
            is_admin=is_admin_name(display_name),
        )
        await self.presence.register(user)
        logger.info(f"Login: {display_name} as {user.user_id} (admin={user.is_admin})")

        try:
            await self.backend.create_session(user.session_token, connection_id, display_name, user.user_id)
        except StoreUnavailable:
            await self.presence.remove(connection_id)
            raise

        await self.connections.emit(connection_id, "loginSuccess", user)
        await self.broadcast_user_list()

        self.connections.join_group(connection_id, PUBLIC_ROOM)
        await self.rooms.add_member(PUBLIC_ROOM, user.user_id)

        await self.connections.emit(connection_id, "updateRoomList", await self.rooms.list_rooms())
        return user

    async def resume_session(self, connection_id: str, token: str) -> User:
        if not token:
            raise InvalidSession()

        session = await self.backend.get_session(token)
        if session is None:
            logger.info(f"Resume rejected for connection {connection_id}: unknown token")
            raise InvalidSession()

        display_name = session["username"]
        user = User(
            connection_id=connection_id,
            display_name=display_name,
            user_id=session["user_id"],
            session_token=token,
            is_admin=is_admin_name(display_name),
        )

        evicted = await self.presence.upsert_evicting(user)
        for stale_connection in evicted:
            await self.connections.emit(stale_connection, "forceLogout")
            self.connections.leave_all(stale_connection)

        if not await self.backend.update_session_connection(token, connection_id):
            # The session was purged while this resume was in flight
            await self.presence.remove(connection_id)
            logger.info(f"Session for {user.user_id} vanished during resume on {connection_id}")
            raise InvalidSession()
        logger.info(f"Session resumed: {display_name} ({user.user_id}) on {connection_id}")

        await self.connections.emit(connection_id, "loginSuccess", user)
        await self.broadcast_user_list()

        room_names = await self.backend.get_user_rooms(user.user_id)
        for room_name in sorted(room_names):
            if await self.rooms.restore_member(room_name, user.user_id) is not None:
                self.connections.join_group(connection_id, room_name)
        logger.debug(f"Re-subscribed {user.user_id} to {len(room_names)} rooms")

        current = await self.presence.get(connection_id)
        if current is None or current.user_id != user.user_id:
            # A newer resume of the same session evicted this connection meanwhile
            self.connections.leave_all(connection_id)
            logger.info(f"Resume on {connection_id} superseded for {user.user_id}")
            return user

        await self.connections.emit(connection_id, "updateRoomList", await self.rooms.list_rooms())
        return user

    async def logout(self, connection_id: str):
        user = await self.disconnect(connection_id)
        if user is None:
            return None
        self.connections.leave_all(connection_id)
        if user.session_token:
            # Ephemeral identity: logging out erases the user's footprint
            await self.backend.delete_session(user.session_token)
            await self.backend.delete_messages_by_author(user.user_id)
            await self.backend.delete_user_memberships(user.user_id)
            logger.info(f"Logout purged session and history of {user.user_id}")
        return user

    async def disconnect(self, connection_id: str):
        user = await self.presence.remove(connection_id)
        if user is None:
            return None
        await self.broadcast_user_list()
        await self.rooms.remove_member_everywhere(user.user_id)
        await self.broadcast_room_list()
        return user

    async def delete_room(self, connection_id: str, room_name: str) -> bool:
        user = await self.presence.get(connection_id)
        if user is None or not user.is_admin:
            raise Unauthorized()
        if not await self.rooms.delete_room(room_name):
            return False
        logger.info(f"Admin {user.display_name} deleted room {room_name}")
        self.connections.discard_group(room_name)
        await self.broadcast_room_list()
        return True

    async def join_room(self, connection_id: str, room_name: str, password: str = "") -> bool:
        user = await self.presence.get(connection_id)
        if user is None:
            raise Unauthorized()
        await self.rooms.join_room(user.user_id, room_name, password or "")
        self.connections.join_group(connection_id, room_name)
        await self.broadcast_room_list()
        await self.connections.emit(connection_id, "joinRoomSuccess", room_name)
        return True

    async def broadcast_user_list(self):
        await self.connections.broadcast("updateUserList", await self.presence.public_list())

    async def broadcast_room_list(self):
        await self.connections.broadcast("updateRoomList", await self.rooms.list_rooms())
