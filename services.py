from backend import redis_backend
from connection_manager import ConnectionManager
from handlers import EventDispatcher
from messaging import MessagingRouter
from presence import PresenceRegistry
from room_directory import RoomDirectory
from sessions import SessionCoordinator

# Process-wide state, reset only at startup by RoomDirectory.load()
connection_manager = ConnectionManager()
presence_registry = PresenceRegistry()
room_directory = RoomDirectory(redis_backend)
session_coordinator = SessionCoordinator(redis_backend, presence_registry, room_directory, connection_manager)
messaging_router = MessagingRouter(redis_backend, presence_registry, connection_manager)
event_dispatcher = EventDispatcher(session_coordinator, messaging_router)
