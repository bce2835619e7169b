import json

import fakeredis
import pytest

from backend import RedisBackend
from connection_manager import ConnectionManager
from handlers import EventDispatcher
from messaging import MessagingRouter
from presence import PresenceRegistry
from room_directory import RoomDirectory
from sessions import SessionCoordinator


class FakeWebSocket:
    """Records outbound frames; `journal` is shared to check cross-connection ordering."""

    def __init__(self, name: str, journal: list):
        self.name = name
        self.journal = journal
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        frame = json.loads(text)
        self.sent.append(frame)
        self.journal.append((self.name, frame["type"]))

    def events(self, event_type: str = None) -> list:
        return [f for f in self.sent if event_type is None or f["type"] == event_type]

    def last(self, event_type: str):
        matching = self.events(event_type)
        return matching[-1]["data"] if matching else None

    def clear(self):
        self.sent.clear()


@pytest.fixture
def redis_client():
    # Private server so tests never share data
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def backend(redis_client):
    return RedisBackend(redis_client)


@pytest.fixture
def connections():
    return ConnectionManager()


@pytest.fixture
def presence():
    return PresenceRegistry()


@pytest.fixture
def rooms(backend):
    return RoomDirectory(backend)


@pytest.fixture
def sessions(backend, presence, rooms, connections):
    return SessionCoordinator(backend, presence, rooms, connections)


@pytest.fixture
def messaging(backend, presence, connections):
    return MessagingRouter(backend, presence, connections)


@pytest.fixture
def dispatcher(sessions, messaging):
    return EventDispatcher(sessions, messaging)


@pytest.fixture
def journal():
    return []


@pytest.fixture
def connect(connections, journal):
    """Open a fake client connection; returns (connection_id, websocket)."""
    async def _connect(name: str):
        ws = FakeWebSocket(name, journal)
        connection_id = await connections.connect(ws, connection_id=f"conn-{name}")
        return connection_id, ws
    return _connect
