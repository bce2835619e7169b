from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class JoinRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_name: str = Field(alias="roomName", min_length=1)
    password: Optional[str] = ""

class RoomSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    has_password: bool = Field(alias="hasPassword")

class RoomDetailsResponse(BaseModel):
    name: str
    has_password: bool
    member_count: int
    online_members: list[str]
