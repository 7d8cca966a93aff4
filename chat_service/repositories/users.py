"""
User profiles, interest selections and the ``activeChats`` cache.

``activeChats`` mirrors room membership for quick profile display only. Room
records stay authoritative; callers must update the cache alongside every
join/leave, and ``reconcile_active_chats`` rebuilds it from the rooms when it
has drifted.
"""

import logging
from typing import Callable, List, Optional, TYPE_CHECKING

from redis.asyncio import Redis
from redis.asyncio.client import Pipeline

from chat_service.core.constants import MAX_INTERESTS
from chat_service.core.errors import ValidationError
from chat_service.core.utils.text import now_ms
from chat_service.db import keys
from chat_service.schemas.user import UserProfile, UserStats

if TYPE_CHECKING:
    from chat_service.repositories.rooms import RoomRepository

logger = logging.getLogger(__name__)


class UserRepository:
    def __init__(self, redis: Redis, clock: Callable[[], int] = now_ms):
        self._redis = redis
        self._clock = clock

    @staticmethod
    def _check_interest_count(interests: List[str]) -> None:
        if len(interests) > MAX_INTERESTS:
            raise ValidationError(
                f"Maximum {MAX_INTERESTS} interests allowed",
                code="TOO_MANY_INTERESTS",
            )

    @staticmethod
    def _queue_interests(pipe: Pipeline, user_id: str, interests: List[str]) -> None:
        key = keys.user_interests(user_id)
        pipe.delete(key)
        if interests:
            pipe.sadd(key, *interests)

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.hgetall(keys.user_profile(user_id))
            pipe.smembers(keys.user_interests(user_id))
            pipe.smembers(keys.user_active_chats(user_id))
            data, interests, active_chats = await pipe.execute()

        if not data.get("id"):
            return None
        return UserProfile(
            id=data["id"],
            username=data.get("username", ""),
            interests=sorted(interests),
            active_chats=sorted(active_chats),
            created_at=int(data.get("createdAt") or 0),
        )

    async def create_or_update_profile(
        self, user_id: str, username: str, interests: Optional[List[str]] = None
    ) -> UserProfile:
        """Upsert; interests, active chats and creation time survive when not given."""
        if interests is not None:
            self._check_interest_count(interests)

        profile_key = keys.user_profile(user_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hsetnx(profile_key, "createdAt", str(self._clock()))
            pipe.hset(profile_key, mapping={"id": user_id, "username": username})
            if interests is not None:
                self._queue_interests(pipe, user_id, interests)
            await pipe.execute()

        return await self.get_profile(user_id)

    async def set_interests(self, user_id: str, interests: List[str]) -> None:
        """Replaces the stored interest set wholesale."""
        self._check_interest_count(interests)
        async with self._redis.pipeline(transaction=True) as pipe:
            self._queue_interests(pipe, user_id, interests)
            await pipe.execute()
        logger.info(f"Interests updated for user {user_id}: {interests}")

    async def get_interests(self, user_id: str) -> List[str]:
        return sorted(await self._redis.smembers(keys.user_interests(user_id)))

    async def add_to_active_chats(self, user_id: str, room_id: str) -> None:
        await self._redis.sadd(keys.user_active_chats(user_id), room_id)

    async def remove_from_active_chats(self, user_id: str, room_id: str) -> None:
        await self._redis.srem(keys.user_active_chats(user_id), room_id)

    async def get_active_chats(self, user_id: str) -> List[str]:
        return sorted(await self._redis.smembers(keys.user_active_chats(user_id)))

    async def reconcile_active_chats(self, user_id: str, rooms: "RoomRepository") -> List[str]:
        """Recomputes the cache from room membership and stores the result."""
        cached = await self.get_active_chats(user_id)

        candidates = {room.id: room for room in await rooms.get_active_rooms()}
        for room_id in cached:
            if room_id not in candidates:
                room = await rooms.get_room(room_id)
                if room is not None:
                    candidates[room_id] = room

        actual = sorted(
            room_id
            for room_id, room in candidates.items()
            if room.is_active and user_id in room.participants
        )
        if actual != cached:
            logger.info(f"Active chats for user {user_id} drifted: cached={cached} actual={actual}")
            key = keys.user_active_chats(user_id)
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if actual:
                    pipe.sadd(key, *actual)
                await pipe.execute()
        return actual

    async def update_username(self, user_id: str, username: str) -> None:
        if await self.user_exists(user_id):
            await self._redis.hset(keys.user_profile(user_id), "username", username)

    async def user_exists(self, user_id: str) -> bool:
        return await self._redis.exists(keys.user_profile(user_id)) > 0

    async def get_user_stats(self, user_id: str) -> UserStats:
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.exists(keys.user_profile(user_id))
            pipe.scard(keys.user_interests(user_id))
            pipe.scard(keys.user_active_chats(user_id))
            exists, interest_count, active_chat_count = await pipe.execute()

        return UserStats(
            interest_count=interest_count,
            active_chat_count=active_chat_count,
            profile_exists=exists > 0,
        )

    async def delete_user_data(self, user_id: str) -> None:
        await self._redis.delete(
            keys.user_profile(user_id),
            keys.user_interests(user_id),
            keys.user_active_chats(user_id),
        )
        logger.info(f"User data erased for {user_id}")
