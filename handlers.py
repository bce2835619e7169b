import json
from typing import Any

from pydantic import ValidationError

from errors import (
    InvalidSession,
    InvalidUsername,
    RoomUnavailable,
    StoreUnavailable,
    Unauthorized,
    UsernameTaken,
    WrongPassword,
)
from messaging import MessagingRouter
from schemas.chat import ChatMessageRequest, ChatTarget, TypingRequest
from schemas.rooms import JoinRoomRequest
from sessions import SessionCoordinator
from logging_config import get_logger

logger = get_logger(__name__)


class EventDispatcher:
    """Routes inbound transport events to the chat core.

    This is the operation boundary: validation errors are reported to the
    originating connection, authorization failures and malformed payloads are
    dropped silently, store failures are logged and abort the operation.
    """

    def __init__(self, sessions: SessionCoordinator, messaging: MessagingRouter):
        self.sessions = sessions
        self.messaging = messaging
        self.connections = sessions.connections
        self._handlers = {
            "login": self.on_login,
            "resumeSession": self.on_resume_session,
            "logout": self.on_logout,
            "joinRoom": self.on_join_room,
            "deleteRoom": self.on_delete_room,
            "requestHistory": self.on_request_history,
            "chatMessage": self.on_chat_message,
            "typing": self.on_typing,
            "stopTyping": self.on_stop_typing,
        }

    async def handle_text(self, connection_id: str, text: str):
        try:
            frame = json.loads(text)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring non-JSON frame from connection {connection_id}")
            return
        if not isinstance(frame, dict) or not isinstance(frame.get("type"), str):
            logger.warning(f"Ignoring frame without event type from connection {connection_id}")
            return
        await self.dispatch(connection_id, frame["type"], frame.get("data"))

    async def dispatch(self, connection_id: str, event: str, data: Any = None):
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"Unknown event {event} from connection {connection_id}")
            return
        logger.debug(f"Event {event} from connection {connection_id}")
        try:
            await handler(connection_id, data)
        except (UsernameTaken, InvalidUsername) as e:
            await self.connections.emit(connection_id, "loginError", e.message)
        except InvalidSession:
            await self.connections.emit(connection_id, "invalidSession")
        except (WrongPassword, RoomUnavailable) as e:
            await self.connections.emit(connection_id, "joinRoomError", e.message)
        except Unauthorized:
            logger.warning(f"Unauthorized {event} from connection {connection_id}")
        except ValidationError as e:
            logger.warning(f"Malformed {event} payload from connection {connection_id}: {e.error_count()} errors")
        except StoreUnavailable as e:
            logger.error(f"Aborted {event} for connection {connection_id}: {e}")

    async def on_disconnect(self, connection_id: str):
        try:
            await self.sessions.disconnect(connection_id)
        except StoreUnavailable as e:
            logger.error(f"Disconnect cleanup for {connection_id} incomplete: {e}")

    # --- handlers ---

    async def on_login(self, connection_id: str, data: Any):
        if not isinstance(data, str):
            logger.warning(f"Ignoring login with non-string name from connection {connection_id}")
            return
        await self.sessions.login(connection_id, data)

    async def on_resume_session(self, connection_id: str, data: Any):
        if not isinstance(data, str) or not data:
            # Nothing to resume; the client simply has no stored token
            return
        await self.sessions.resume_session(connection_id, data)

    async def on_logout(self, connection_id: str, data: Any = None):
        await self.sessions.logout(connection_id)

    async def on_join_room(self, connection_id: str, data: Any):
        request = JoinRoomRequest.model_validate(data)
        await self.sessions.join_room(connection_id, request.room_name, request.password or "")

    async def on_delete_room(self, connection_id: str, data: Any):
        if not isinstance(data, str) or not data:
            raise Unauthorized()
        await self.sessions.delete_room(connection_id, data)

    async def on_request_history(self, connection_id: str, data: Any):
        target = ChatTarget.model_validate(data)
        await self.messaging.get_history(connection_id, target)

    async def on_chat_message(self, connection_id: str, data: Any):
        request = ChatMessageRequest.model_validate(data)
        await self.messaging.send(connection_id, request.content, request.target)

    async def on_typing(self, connection_id: str, data: Any):
        request = TypingRequest.model_validate(data)
        await self.messaging.relay_typing(connection_id, request.target, typing=True)

    async def on_stop_typing(self, connection_id: str, data: Any):
        request = TypingRequest.model_validate(data)
        await self.messaging.relay_typing(connection_id, request.target, typing=False)
