import logging
from typing import List

from chat_service.repositories.rooms import RoomRepository
from chat_service.repositories.users import UserRepository
from chat_service.schemas.auth import Identity
from chat_service.schemas.user import UserProfile, UserStats

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, users: UserRepository, rooms: RoomRepository):
        self.users = users
        self.rooms = rooms

    async def get_profile(self, identity: Identity) -> UserProfile:
        """Get the caller's profile, creating it on first access"""
        profile = await self.users.get_profile(identity.user_id)
        if profile is None:
            logger.info(f"Creating profile for user {identity.user_id}")
            return await self.users.create_or_update_profile(identity.user_id, identity.username)

        if profile.username != identity.username:
            await self.users.update_username(identity.user_id, identity.username)
            profile.username = identity.username
        return profile

    async def get_interests(self, identity: Identity) -> List[str]:
        return await self.users.get_interests(identity.user_id)

    async def set_interests(self, identity: Identity, interests: List[str]) -> UserProfile:
        await self.users.set_interests(identity.user_id, interests)
        return await self.users.create_or_update_profile(identity.user_id, identity.username)

    async def get_active_chats(self, identity: Identity) -> List[str]:
        """Active chats recomputed from room membership"""
        return await self.users.reconcile_active_chats(identity.user_id, self.rooms)

    async def get_stats(self, identity: Identity) -> UserStats:
        return await self.users.get_user_stats(identity.user_id)

    async def delete_user_data(self, identity: Identity) -> None:
        await self.users.delete_user_data(identity.user_id)
