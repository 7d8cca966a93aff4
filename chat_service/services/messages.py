import logging
from typing import List, Optional

from chat_service.core.errors import ForbiddenError, NotFoundError
from chat_service.repositories.base import Outcome
from chat_service.repositories.messages import MessageRepository
from chat_service.repositories.rooms import RoomRepository
from chat_service.schemas.auth import Identity
from chat_service.schemas.chat import ChatRoom, Message, MessageCreate, MessageStats
from chat_service.services.notifications import NotificationDispatcher
from chat_service.services.rooms import room_not_found

logger = logging.getLogger(__name__)


def message_not_found() -> NotFoundError:
    return NotFoundError("Message not found", code="MESSAGE_NOT_FOUND")


class MessageService:
    def __init__(self, rooms: RoomRepository, messages: MessageRepository, dispatcher: NotificationDispatcher):
        self.rooms = rooms
        self.messages = messages
        self.dispatcher = dispatcher

    async def _load_room(self, room_id: str) -> ChatRoom:
        room = await self.rooms.get_room(room_id)
        if room is None:
            raise room_not_found()
        return room

    async def _require_participant(self, identity: Identity, room_id: str) -> ChatRoom:
        room = await self._load_room(room_id)
        if identity.user_id not in room.participants:
            raise ForbiddenError("You must join the chat room to view messages", code="ACCESS_DENIED")
        return room

    async def get_messages(
        self, identity: Identity, room_id: str, limit: int, before: Optional[int] = None
    ) -> List[Message]:
        await self._require_participant(identity, room_id)
        return await self.messages.get_messages(room_id, limit, before)

    async def get_messages_after(self, identity: Identity, room_id: str, timestamp: int) -> List[Message]:
        await self._require_participant(identity, room_id)
        return await self.messages.get_messages_after(room_id, timestamp)

    async def get_message_stats(self, identity: Identity, room_id: str) -> MessageStats:
        await self._require_participant(identity, room_id)
        return await self.messages.get_message_stats(room_id)

    async def send_message(self, identity: Identity, room_id: str, data: MessageCreate) -> Message:
        room = await self._load_room(room_id)
        if not room.is_active:
            raise ForbiddenError("Chat room is no longer active", code="CHAT_ROOM_INACTIVE")
        if identity.user_id not in room.participants:
            raise ForbiddenError("You must join the chat room to send messages", code="ACCESS_DENIED")

        message = await self.messages.create_message(room_id, identity.user_id, identity.username, data.content)
        if await self.rooms.touch(room_id) is Outcome.NOT_FOUND:
            logger.warning(f"Chat room {room_id} disappeared while message {message.id} was being sent")

        await self.dispatcher.message_sent(message)
        return message

    async def delete_message(self, identity: Identity, room_id: str, message_id: str) -> None:
        """Moderation removal, allowed to the room creator and the author."""
        room = await self._load_room(room_id)
        message = await self.messages.get_message(room_id, message_id)
        if message is None:
            raise message_not_found()
        if identity.user_id not in (room.creator_id, message.user_id):
            raise ForbiddenError("Only the room creator or the author can delete a message")

        if await self.messages.delete_message(room_id, message_id) is Outcome.NOT_FOUND:
            raise message_not_found()
