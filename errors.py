from constants import (
    ROOM_UNAVAILABLE_MESSAGE,
    USERNAME_EMPTY_MESSAGE,
    USERNAME_TAKEN_MESSAGE,
    WRONG_PASSWORD_MESSAGE,
)


class ChatError(Exception):
    """Base class for errors raised by the chat core."""

    message = "Chat error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class UsernameTaken(ChatError):
    message = USERNAME_TAKEN_MESSAGE


class InvalidUsername(ChatError):
    message = USERNAME_EMPTY_MESSAGE


class InvalidSession(ChatError):
    message = "Invalid session"


class WrongPassword(ChatError):
    message = WRONG_PASSWORD_MESSAGE


class Unauthorized(ChatError):
    message = "Unauthorized"


class StoreUnavailable(ChatError):
    message = "Store unavailable"


class RoomUnavailable(ChatError):
    message = ROOM_UNAVAILABLE_MESSAGE
