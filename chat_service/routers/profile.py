from fastapi import APIRouter, Depends, Request
from typing import List
import logging

from chat_service.core.utils.dependencies import get_current_identity, get_profile_service
from chat_service.core.utils.rate_limiter import limiter
from chat_service.schemas.auth import Identity
from chat_service.schemas.common import ApiResponse, OperationResult
from chat_service.schemas.user import InterestsUpdate, UserProfile, UserStats
from chat_service.services.profile import ProfileService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["user"])

@router.get("/profile", response_model=ApiResponse[UserProfile], summary="Get Current User Profile")
@limiter.limit("30/minute")
async def get_profile(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    service: ProfileService = Depends(get_profile_service),
):
    """
    Retrieves the chat profile of the currently authenticated user.

    - **Rate Limit**: 30 requests per minute.
    - Requires a valid JWT token in the `Authorization` header (Bearer scheme).
    - The profile is created on first access; a changed display name is refreshed from the token.

    Returns:
    - **ApiResponse[UserProfile]**: `id`, `username`, `interests`, `activeChats` and `createdAt`.

    Raises:
    - **401**: If the JWT token is invalid or the user is not authenticated.
    """
    return ApiResponse(data=await service.get_profile(identity))

@router.get("/interests", response_model=ApiResponse[List[str]], summary="Get selected interests")
@limiter.limit("30/minute")
async def get_interests(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    service: ProfileService = Depends(get_profile_service),
):
    return ApiResponse(data=await service.get_interests(identity))

@router.post("/interests", response_model=ApiResponse[UserProfile], summary="Replace selected interests")
@limiter.limit("10/minute")
async def set_interests(
    request: Request,
    update: InterestsUpdate,
    identity: Identity = Depends(get_current_identity),
    service: ProfileService = Depends(get_profile_service),
):
    """
    Replaces the caller's interest selection.

    - **Rate Limit**: 10 requests per minute.
    - At most 5 tags, each from the interest catalog.

    Raises:
    - **400**: If a tag is unknown (`INVALID_INTERESTS`) or more than 5 are given (`TOO_MANY_INTERESTS`).
    - **401**: If the caller is not authenticated.
    """
    profile = await service.set_interests(identity, update.interests)
    logger.info(f"Interests updated for user {identity.user_id}")
    return ApiResponse(data=profile)

@router.get("/active-chats", response_model=ApiResponse[List[str]], summary="Get joined chat rooms")
@limiter.limit("30/minute")
async def get_active_chats(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    service: ProfileService = Depends(get_profile_service),
):
    """Ids of the active rooms the caller participates in, rebuilt from room membership."""
    return ApiResponse(data=await service.get_active_chats(identity))

@router.get("/stats", response_model=ApiResponse[UserStats], summary="Get user statistics")
@limiter.limit("30/minute")
async def get_stats(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    service: ProfileService = Depends(get_profile_service),
):
    return ApiResponse(data=await service.get_stats(identity))

@router.delete("", response_model=OperationResult, summary="Delete user data")
@limiter.limit("5/minute")
async def delete_user_data(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    service: ProfileService = Depends(get_profile_service),
):
    """
    Erases the caller's profile, interests and active chat list.

    - **Rate Limit**: 5 requests per minute.
    - Room memberships and sent messages are not touched.
    """
    await service.delete_user_data(identity)
    logger.info(f"User data deleted for {identity.user_id}")
    return OperationResult()
