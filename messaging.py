from typing import List, Optional

from backend import RedisBackend
from connection_manager import ConnectionManager
from presence import PresenceRegistry
from schemas.chat import ChatHistory, ChatMessage, ChatTarget
from logging_config import get_logger

logger = get_logger(__name__)


class MessagingRouter:
    """Persists chat messages and fans them out to live connections.

    Room delivery goes to the transport group named after the room, never to
    the room directory's member set.
    """

    def __init__(self, backend: RedisBackend, presence: PresenceRegistry, connections: ConnectionManager):
        self.backend = backend
        self.presence = presence
        self.connections = connections

    async def send(self, connection_id: str, content: str, target: ChatTarget) -> Optional[ChatMessage]:
        sender = await self.presence.get(connection_id)
        if sender is None:
            logger.debug(f"Ignoring message from unauthenticated connection {connection_id}")
            return None
        chat_id = target.chat_id
        if not chat_id:
            logger.debug(f"Ignoring message without target id from {connection_id}")
            return None

        if target.type == "private":
            record = await self.backend.append_message(
                sender.user_id, sender.display_name, content, to_user_id=chat_id
            )
            message = ChatMessage(**record)
            # Resolve after the write; the recipient may have come or gone meanwhile
            recipient = await self.presence.find_by_user_id(chat_id)
            if recipient is None:
                logger.info(f"Private message {message.id} stored for offline user {chat_id}")
                return message
            await self.connections.emit_many(
                [recipient.connection_id, connection_id], "chatMessage", message
            )
            logger.debug(f"Private message {message.id} delivered {sender.user_id} -> {chat_id}")
            return message

        record = await self.backend.append_message(
            sender.user_id, sender.display_name, content, room=chat_id
        )
        message = ChatMessage(**record)
        await self.connections.emit_to_group(chat_id, "chatMessage", message)
        logger.debug(f"Room message {message.id} delivered to group {chat_id}")
        return message

    async def get_history(self, connection_id: str, target: ChatTarget) -> Optional[List[ChatMessage]]:
        user = await self.presence.get(connection_id)
        if user is None:
            return None
        chat_id = target.chat_id
        if target.type == "private":
            rows = await self.backend.get_private_history(user.user_id, chat_id)
        else:
            rows = await self.backend.get_room_history(chat_id)
        history = [ChatMessage(**row) for row in rows]

        # The connection may have gone away while the query was in flight
        if self.connections.is_connected(connection_id):
            await self.connections.emit(
                connection_id, "chatHistory", ChatHistory(chat_id=chat_id, history=history)
            )
        else:
            logger.debug(f"Discarding history for gone connection {connection_id}")
        return history

    async def relay_typing(self, connection_id: str, target: ChatTarget, typing: bool = True):
        sender = await self.presence.get(connection_id)
        if sender is None:
            return
        event = "typing" if typing else "stopTyping"
        chat_id = target.chat_id
        if target.type == "private":
            recipient = await self.presence.find_by_user_id(chat_id)
            if recipient is None:
                return
            # From the recipient's side the conversation is keyed by the sender
            payload = {
                "from": sender.user_id,
                "fromName": sender.display_name,
                "target": {"type": "private", "id": sender.user_id},
            }
            await self.connections.emit(recipient.connection_id, event, payload)
            return
        payload = {
            "from": sender.user_id,
            "fromName": sender.display_name,
            "target": {"type": target.type, "id": chat_id},
        }
        await self.connections.emit_to_group(chat_id, event, payload, exclude=connection_id)
