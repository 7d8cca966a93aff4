from fastapi import APIRouter, Depends, Query, Request, status
from typing import List, Optional
import logging

from chat_service.core.constants import DEFAULT_MESSAGE_PAGE_SIZE
from chat_service.core.errors import AppError
from chat_service.core.utils.dependencies import get_current_identity, get_message_service
from chat_service.core.utils.rate_limiter import limiter
from chat_service.schemas.auth import Identity
from chat_service.schemas.chat import Message, MessageCreate, MessageStats
from chat_service.schemas.common import ApiResponse, OperationResult
from chat_service.services.messages import MessageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chatrooms/{room_id}/messages", tags=["messages"])

@router.get("", response_model=ApiResponse[List[Message]], summary="Get message history")
@limiter.limit("60/minute")
async def get_messages(
    request: Request,
    room_id: str,
    limit: int = Query(DEFAULT_MESSAGE_PAGE_SIZE, ge=1),
    before: Optional[int] = Query(None, ge=0),
    identity: Identity = Depends(get_current_identity),
    service: MessageService = Depends(get_message_service),
):
    """
    Returns a page of the room's history, newest first.

    - **Rate Limit**: 60 requests per minute.
    - Only participants may read the history.
    - `before` is a millisecond timestamp cursor: pass the oldest `timestamp` of the previous page.
    - `limit` is capped at 100.

    Returns:
    - **ApiResponse[List[Message]]**: Messages ordered by `timestamp` descending.

    Raises:
    - **401**: If the caller is not authenticated.
    - **403**: If the caller has not joined the room.
    - **404**: If the room does not exist.
    """
    messages = await service.get_messages(identity, room_id, limit, before)
    return ApiResponse(data=messages)

@router.post("", response_model=ApiResponse[Message], status_code=status.HTTP_201_CREATED, summary="Send a message")
@limiter.limit("30/minute")
async def send_message(
    request: Request,
    room_id: str,
    message: MessageCreate,
    identity: Identity = Depends(get_current_identity),
    service: MessageService = Depends(get_message_service),
):
    """
    Posts a message to the room and fans it out to live subscribers.

    - **Rate Limit**: 30 requests per minute.
    - Content is trimmed, stripped of angle brackets and must be 1-500 characters.

    Raises:
    - **400**: If the content is empty or too long.
    - **401**: If the caller is not authenticated.
    - **403**: If the room is inactive or the caller has not joined it.
    - **404**: If the room does not exist.
    """
    try:
        sent = await service.send_message(identity, room_id, message)
        return ApiResponse(data=sent)
    except AppError as e:
        logger.warning(f"Message to {room_id} rejected: {e.message}")
        raise e

@router.get("/after", response_model=ApiResponse[List[Message]], summary="Get messages after a timestamp")
@limiter.limit("60/minute")
async def get_messages_after(
    request: Request,
    room_id: str,
    timestamp: int = Query(..., ge=0),
    identity: Identity = Depends(get_current_identity),
    service: MessageService = Depends(get_message_service),
):
    """Catch-up after a reconnect, oldest first."""
    messages = await service.get_messages_after(identity, room_id, timestamp)
    return ApiResponse(data=messages)

@router.get("/stats", response_model=ApiResponse[MessageStats], summary="Get message statistics")
@limiter.limit("30/minute")
async def get_message_stats(
    request: Request,
    room_id: str,
    identity: Identity = Depends(get_current_identity),
    service: MessageService = Depends(get_message_service),
):
    return ApiResponse(data=await service.get_message_stats(identity, room_id))

@router.delete("/{message_id}", response_model=OperationResult, summary="Delete a message")
@limiter.limit("20/minute")
async def delete_message(
    request: Request,
    room_id: str,
    message_id: str,
    identity: Identity = Depends(get_current_identity),
    service: MessageService = Depends(get_message_service),
):
    """
    Removes a single message from the history.

    - **Rate Limit**: 20 requests per minute.
    - Allowed to the room creator and the message author.

    Raises:
    - **401**: If the caller is not authenticated.
    - **403**: If the caller is neither the creator nor the author.
    - **404**: If the room or the message does not exist.
    """
    await service.delete_message(identity, room_id, message_id)
    logger.info(f"Message {message_id} in {room_id} deleted by {identity.user_id}")
    return OperationResult()
