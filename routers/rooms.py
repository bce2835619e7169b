from fastapi import APIRouter, HTTPException

from schemas.chat import OnlineUser
from schemas.rooms import RoomDetailsResponse, RoomSummary
from services import presence_registry, room_directory
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])
users_router = APIRouter(prefix="/users", tags=["users"])


@rooms_router.get("/", response_model=list[RoomSummary])
async def list_rooms():
    return await room_directory.list_rooms()


@rooms_router.get("/{room_name}", response_model=RoomDetailsResponse)
async def get_room_details(room_name: str):
    """
    Get room details.

    Returns:
    - name: Room name
    - has_password: Whether room is password protected
    - member_count: Members tracked by the room directory
    - online_members: Display names of members currently online
    """
    room = await room_directory.get(room_name)
    if room is None:
        logger.info(f"Room details failed: Room {room_name} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    members = await room_directory.members(room_name)
    online = [user.display_name for user in await presence_registry.snapshot() if user.user_id in members]

    return RoomDetailsResponse(
        name=room.name,
        has_password=room.has_password,
        member_count=len(members),
        online_members=online,
    )


@users_router.get("/online", response_model=list[OnlineUser])
async def list_online_users():
    return [
        OnlineUser(
            connection_id=user.connection_id,
            display_name=user.display_name,
            user_id=user.user_id,
            is_admin=user.is_admin,
        )
        for user in await presence_registry.snapshot()
    ]
