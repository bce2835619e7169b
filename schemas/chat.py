from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional

from constants import PUBLIC_ROOM


class User(BaseModel):
    """An authenticated user bound to one live connection."""

    model_config = ConfigDict(populate_by_name=True)

    connection_id: str = Field(alias="id")
    display_name: str = Field(alias="name")
    user_id: str = Field(alias="userId")
    session_token: str = Field(alias="token")
    is_admin: bool = Field(default=False, alias="isAdmin")

    def public(self) -> dict:
        """Wire form for user lists; the session token stays with its owner."""
        return self.model_dump(by_alias=True, exclude={"session_token"})

class OnlineUser(BaseModel):
    connection_id: str
    display_name: str
    user_id: str
    is_admin: bool

class ChatTarget(BaseModel):
    type: Literal["public", "room", "private"]
    id: Optional[str] = None

    @property
    def chat_id(self) -> str:
        if self.type == "public" and not self.id:
            return PUBLIC_ROOM
        return self.id or ""

class ChatMessageRequest(BaseModel):
    content: str = Field(min_length=1)
    target: ChatTarget

class TypingRequest(BaseModel):
    target: ChatTarget

class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[int] = None
    from_user_id: str = Field(alias="from")
    from_user_name: str = Field(alias="fromName")
    to_user_id: Optional[str] = Field(default=None, alias="to")
    room: Optional[str] = None
    content: str
    is_private: bool = Field(alias="isPrivate")
    timestamp: str

class ChatHistory(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chat_id: str = Field(alias="chatId")
    history: list[ChatMessage]
