from fastapi import APIRouter, Depends, Query, Request
from typing import List

from chat_service.core.constants import DEFAULT_SEARCH_LIMIT
from chat_service.core.utils.dependencies import get_current_identity, get_room_service
from chat_service.core.utils.rate_limiter import limiter
from chat_service.schemas.auth import Identity
from chat_service.schemas.chat import ChatRoom, InterestTag
from chat_service.schemas.common import ApiResponse
from chat_service.services.rooms import RoomService

router = APIRouter(prefix="/api", tags=["discovery"])

@router.get("/search/chatrooms", response_model=ApiResponse[List[ChatRoom]], summary="Search chat rooms")
@limiter.limit("30/minute")
async def search_chat_rooms(
    request: Request,
    query: str = Query(...),
    limit: int = Query(DEFAULT_SEARCH_LIMIT, ge=1),
    identity: Identity = Depends(get_current_identity),
    service: RoomService = Depends(get_room_service),
):
    """
    Case-insensitive search over active rooms' title, topic and interests.

    - **Rate Limit**: 30 requests per minute.
    - `query` needs at least 2 characters; `limit` is capped at 50.

    Raises:
    - **400** (`QUERY_TOO_SHORT`): If the query is shorter than 2 characters.
    - **401**: If the caller is not authenticated.
    """
    return ApiResponse(data=await service.search_rooms(query, limit))

@router.get("/interests", response_model=ApiResponse[List[InterestTag]], summary="List interest tags")
@limiter.limit("60/minute")
async def list_interests(request: Request, service: RoomService = Depends(get_room_service)):
    """Interest catalog with the number of active rooms per tag. No authentication required."""
    return ApiResponse(data=await service.list_interest_tags())
