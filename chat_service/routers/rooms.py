from fastapi import APIRouter, Depends, Query, Request, status
from typing import List, Optional
import logging

from chat_service.core.constants import DEFAULT_ROOM_PAGE_SIZE
from chat_service.core.errors import AppError
from chat_service.core.utils.dependencies import get_current_identity, get_room_service
from chat_service.core.utils.rate_limiter import limiter
from chat_service.schemas.auth import Identity
from chat_service.schemas.chat import ChatRoom, ChatRoomCreate
from chat_service.schemas.common import ApiResponse, OperationResult
from chat_service.services.rooms import RoomService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chatrooms", tags=["chatrooms"])

@router.post("", response_model=ApiResponse[ChatRoom], status_code=status.HTTP_201_CREATED, summary="Create a chat room")
@limiter.limit("10/minute")
async def create_chat_room(
    request: Request,
    room: ChatRoomCreate,
    identity: Identity = Depends(get_current_identity),
    service: RoomService = Depends(get_room_service),
):
    """
    Creates a new chat room owned by the caller.

    - **Rate Limit**: 10 requests per minute.
    - The creator becomes the first participant and the room is announced on the discovery channel.

    Parameters:
    - **request** (Request): The incoming HTTP request object (used for rate limiting).
    - **room** (ChatRoomCreate): `title` (3-100 characters), `topic` (10-200 characters) and 1 to 5 `interests`.

    Returns:
    - **ApiResponse[ChatRoom]**: The created room.

    Raises:
    - **401**: If the caller is not authenticated.
    - **400**: If the title, topic or interests are invalid.
    - **429**: If the rate limit is exceeded.
    """
    try:
        created = await service.create_room(identity, room)
        logger.info(f"Chat room created: {created.id} by {identity.user_id}")
        return ApiResponse(data=created)
    except AppError as e:
        logger.warning(f"Chat room creation failed: {e.message}")
        raise e

@router.get("", response_model=ApiResponse[List[ChatRoom]], summary="List active chat rooms")
@limiter.limit("60/minute")
async def list_chat_rooms(
    request: Request,
    interests: Optional[List[str]] = Query(None),
    limit: int = Query(DEFAULT_ROOM_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_current_identity),
    service: RoomService = Depends(get_room_service),
):
    """
    Lists active chat rooms, most recently active first.

    - **Rate Limit**: 60 requests per minute.
    - With `interests`, rooms sharing more of the given tags rank first.
    - `limit` is capped at 100.
    """
    rooms = await service.list_rooms(interests, limit, offset)
    return ApiResponse(data=rooms)

@router.get("/{room_id}", response_model=ApiResponse[ChatRoom], summary="Get a chat room")
@limiter.limit("60/minute")
async def get_chat_room(
    request: Request,
    room_id: str,
    identity: Identity = Depends(get_current_identity),
    service: RoomService = Depends(get_room_service),
):
    return ApiResponse(data=await service.get_room(room_id))

@router.post("/{room_id}/join", response_model=OperationResult, summary="Join a chat room")
@limiter.limit("30/minute")
async def join_chat_room(
    request: Request,
    room_id: str,
    identity: Identity = Depends(get_current_identity),
    service: RoomService = Depends(get_room_service),
):
    """
    Adds the caller to the room's participants. Joining twice is harmless.

    - **Rate Limit**: 30 requests per minute.

    Raises:
    - **401**: If the caller is not authenticated.
    - **404**: If the room does not exist or is no longer active.
    - **409**: If the room kept changing under concurrent updates.
    """
    try:
        await service.join_room(identity, room_id)
        logger.info(f"User {identity.user_id} joined chat room {room_id}")
        return OperationResult()
    except AppError as e:
        logger.warning(f"Join failed for {room_id}: {e.message}")
        raise e

@router.post("/{room_id}/leave", response_model=OperationResult, summary="Leave a chat room")
@limiter.limit("30/minute")
async def leave_chat_room(
    request: Request,
    room_id: str,
    identity: Identity = Depends(get_current_identity),
    service: RoomService = Depends(get_room_service),
):
    """
    Removes the caller from the room. The last participant leaving deactivates the room.

    - **Rate Limit**: 30 requests per minute.

    Raises:
    - **401**: If the caller is not authenticated.
    - **404**: If the room does not exist.
    """
    await service.leave_room(identity, room_id)
    logger.info(f"User {identity.user_id} left chat room {room_id}")
    return OperationResult()

@router.delete("/{room_id}", response_model=OperationResult, summary="Delete a chat room")
@limiter.limit("10/minute")
async def delete_chat_room(
    request: Request,
    room_id: str,
    identity: Identity = Depends(get_current_identity),
    service: RoomService = Depends(get_room_service),
):
    """
    Deletes the room together with its message history.

    - **Rate Limit**: 10 requests per minute.
    - Only the creator may delete a room.

    Raises:
    - **401**: If the caller is not authenticated.
    - **403**: If the caller is not the creator.
    - **404**: If the room does not exist.
    """
    try:
        await service.delete_room(identity, room_id)
        logger.info(f"Chat room {room_id} deleted by {identity.user_id}")
        return OperationResult()
    except AppError as e:
        logger.warning(f"Deleting chat room {room_id} failed: {e.message}")
        raise e
