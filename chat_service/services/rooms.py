import logging
from typing import List, Optional

from chat_service.core.constants import (
    INTEREST_TAGS,
    MAX_ROOM_PAGE_SIZE,
    MAX_SEARCH_LIMIT,
    SEARCH_MIN_QUERY_LENGTH,
)
from chat_service.core.errors import ForbiddenError, NotFoundError, ValidationError
from chat_service.core.utils.text import now_ms
from chat_service.repositories.base import Outcome
from chat_service.repositories.rooms import RoomRepository
from chat_service.repositories.users import UserRepository
from chat_service.schemas.auth import Identity
from chat_service.schemas.chat import ChatRoom, ChatRoomCreate, InterestTag
from chat_service.schemas.realtime import EventType, RealtimeEvent
from chat_service.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


def room_not_found(message: str = "Chat room not found") -> NotFoundError:
    return NotFoundError(message, code="CHAT_ROOM_NOT_FOUND")


class RoomService:
    """Room lifecycle and discovery: repository writes first, then notifications."""

    def __init__(self, rooms: RoomRepository, users: UserRepository, dispatcher: NotificationDispatcher):
        self.rooms = rooms
        self.users = users
        self.dispatcher = dispatcher

    async def create_room(self, identity: Identity, data: ChatRoomCreate) -> ChatRoom:
        room = await self.rooms.create_room(
            data.title,
            data.topic,
            identity.user_id,
            identity.username,
            data.interests,
        )
        await self.users.add_to_active_chats(identity.user_id, room.id)
        await self.dispatcher.room_created(room)
        return room

    async def list_rooms(self, interests: Optional[List[str]], limit: int, offset: int) -> List[ChatRoom]:
        if interests:
            rooms = await self.rooms.get_rooms_by_interests(interests)
        else:
            rooms = await self.rooms.get_active_rooms()

        limit = min(limit, MAX_ROOM_PAGE_SIZE)
        return rooms[offset:offset + limit]

    async def get_room(self, room_id: str) -> ChatRoom:
        room = await self.rooms.get_room(room_id)
        if room is None:
            raise room_not_found()
        return room

    async def join_room(self, identity: Identity, room_id: str) -> None:
        outcome = await self.rooms.join_room(room_id, identity.user_id)
        if outcome is Outcome.NOT_FOUND:
            raise room_not_found("Chat room not found or inactive")

        await self.users.add_to_active_chats(identity.user_id, room_id)
        if outcome is Outcome.SUCCESS:
            await self.dispatcher.user_joined(room_id, identity.user_id, identity.username)

    async def leave_room(self, identity: Identity, room_id: str) -> None:
        outcome = await self.rooms.leave_room(room_id, identity.user_id)
        if outcome is Outcome.NOT_FOUND:
            raise room_not_found()

        await self.users.remove_from_active_chats(identity.user_id, room_id)
        if outcome is Outcome.SUCCESS:
            await self.dispatcher.user_left(room_id, identity.user_id, identity.username)

    async def delete_room(self, identity: Identity, room_id: str) -> None:
        room = await self.rooms.get_room(room_id)
        outcome = await self.rooms.delete_room(room_id, identity.user_id)
        if outcome is Outcome.NOT_FOUND or room is None:
            raise room_not_found()
        if outcome is Outcome.FORBIDDEN:
            raise ForbiddenError("Only chat room creator can delete the room")

        await self.dispatcher.room_deleted(room_id, identity.user_id, identity.username)

        # best-effort cache cleanup for everyone who was still inside
        event = RealtimeEvent(
            type=EventType.ROOM_DELETED,
            room_id=room_id,
            user_id=identity.user_id,
            username=identity.username,
            timestamp=now_ms(),
        )
        for participant in room.participants:
            await self.users.remove_from_active_chats(participant, room_id)
            if participant != identity.user_id:
                await self.dispatcher.notify_user(participant, event)

    async def search_rooms(self, query: str, limit: int) -> List[ChatRoom]:
        query = query.strip()
        if len(query) < SEARCH_MIN_QUERY_LENGTH:
            raise ValidationError(
                f"Search query must be at least {SEARCH_MIN_QUERY_LENGTH} characters",
                code="QUERY_TOO_SHORT",
            )
        results = await self.rooms.search_rooms(query)
        return results[:min(limit, MAX_SEARCH_LIMIT)]

    async def list_interest_tags(self) -> List[InterestTag]:
        counts = await self.rooms.interest_counts()
        return [
            InterestTag(**tag, chat_room_count=counts.get(tag["id"], 0))
            for tag in INTEREST_TAGS
        ]
