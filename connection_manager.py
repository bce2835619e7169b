import asyncio
import json
import uuid
from typing import Any, Dict, Iterable, Optional, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """Live WebSocket connections and the named delivery groups they subscribe to.

    Group delivery is independent of room membership bookkeeping: whoever is in a
    group receives what is emitted to it.
    """

    def __init__(self):
        # Format: {connection_id: websocket}
        self.active_connections: Dict[str, WebSocket] = {}
        # Format: {group_name: {connection_id, ...}}
        self.groups: Dict[str, Set[str]] = {}

    async def connect(self, websocket: WebSocket, connection_id: Optional[str] = None) -> str:
        await websocket.accept()
        connection_id = connection_id or str(uuid.uuid4())
        self.active_connections[connection_id] = websocket
        logger.info(f"Connection {connection_id} accepted ({len(self.active_connections)} live)")
        return connection_id

    def disconnect(self, connection_id: str):
        self.active_connections.pop(connection_id, None)
        self.leave_all(connection_id)
        logger.info(f"Connection {connection_id} removed ({len(self.active_connections)} live)")

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self.active_connections

    # --- groups ---

    def join_group(self, connection_id: str, group: str):
        self.groups.setdefault(group, set()).add(connection_id)
        logger.debug(f"Connection {connection_id} joined group {group}")

    def leave_group(self, connection_id: str, group: str):
        members = self.groups.get(group)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self.groups[group]

    def leave_all(self, connection_id: str):
        for group in list(self.groups):
            self.leave_group(connection_id, group)

    def discard_group(self, group: str):
        removed = self.groups.pop(group, None)
        if removed:
            logger.debug(f"Group {group} discarded with {len(removed)} subscribers")

    def group_members(self, group: str) -> Set[str]:
        return set(self.groups.get(group, ()))

    # --- delivery ---

    @staticmethod
    def encode(event: str, data: Any = None) -> str:
        return json.dumps({"type": event, "data": jsonable_encoder(data, by_alias=True)})

    async def emit(self, connection_id: str, event: str, data: Any = None) -> bool:
        """Send one event to one connection. Unknown connections are a no-op."""
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            logger.debug(f"Dropping {event} for gone connection {connection_id}")
            return False
        try:
            await websocket.send_text(self.encode(event, data))
            return True
        except Exception as e:
            logger.warning(f"Error sending {event} to connection {connection_id}: {e}")
            return False

    async def emit_many(self, connection_ids: Iterable[str], event: str, data: Any = None):
        targets = list(dict.fromkeys(connection_ids))
        if not targets:
            return
        await asyncio.gather(*(self.emit(cid, event, data) for cid in targets))

    async def emit_to_group(self, group: str, event: str, data: Any = None, exclude: Optional[str] = None):
        targets = [cid for cid in self.group_members(group) if cid != exclude]
        logger.debug(f"Emitting {event} to {len(targets)} connections in group {group}")
        await self.emit_many(targets, event, data)

    async def broadcast(self, event: str, data: Any = None):
        await self.emit_many(list(self.active_connections), event, data)
