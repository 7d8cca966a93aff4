"""
Notification dispatcher: typed state-change events on named channels.

Publishing is best effort: it happens only after the mutation it describes has
been written, and a failing transport is logged without affecting the caller.
"""

import asyncio
import json
import logging
from typing import Callable, Iterable, Protocol

from redis.asyncio import Redis

from chat_service.core.constants import DISCOVERY_CHANNEL, room_channel, user_channel
from chat_service.core.utils.text import now_ms
from chat_service.schemas.chat import ChatRoom, Message
from chat_service.schemas.realtime import EventType, RealtimeEvent

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    async def publish(self, channel: str, payload: dict) -> None: ...


class RedisPublisher:
    """Publishes JSON events through Redis pub/sub."""

    def __init__(self, redis: Redis):
        self._redis = redis

    async def publish(self, channel: str, payload: dict) -> None:
        await self._redis.publish(channel, json.dumps(payload))


class NotificationDispatcher:
    def __init__(self, publisher: Publisher, clock: Callable[[], int] = now_ms):
        self._publisher = publisher
        self._clock = clock

    async def _publish(self, channel: str, event: RealtimeEvent) -> None:
        try:
            await self._publisher.publish(channel, event.to_payload())
        except Exception as e:
            logger.warning(f"Failed to publish {event.type.value} event on {channel}: {e}")

    async def message_sent(self, message: Message) -> None:
        await self._publish(room_channel(message.chat_room_id), RealtimeEvent(
            type=EventType.MESSAGE,
            id=message.id,
            room_id=message.chat_room_id,
            user_id=message.user_id,
            username=message.username,
            content=message.content,
            timestamp=message.timestamp,
        ))

    async def user_joined(self, room_id: str, user_id: str, username: str) -> None:
        await self._publish(room_channel(room_id), RealtimeEvent(
            type=EventType.USER_JOINED,
            room_id=room_id,
            user_id=user_id,
            username=username,
            timestamp=self._clock(),
        ))

    async def user_left(self, room_id: str, user_id: str, username: str) -> None:
        await self._publish(room_channel(room_id), RealtimeEvent(
            type=EventType.USER_LEFT,
            room_id=room_id,
            user_id=user_id,
            username=username,
            timestamp=self._clock(),
        ))

    async def room_created(self, room: ChatRoom) -> None:
        await self._publish(DISCOVERY_CHANNEL, RealtimeEvent(
            type=EventType.ROOM_CREATED,
            room_id=room.id,
            user_id=room.creator_id,
            username=room.creator_username,
            timestamp=room.created_at,
        ))

    async def room_deleted(self, room_id: str, user_id: str, username: str) -> None:
        """Announced on discovery and on the room itself so occupants can leave the view."""
        event = RealtimeEvent(
            type=EventType.ROOM_DELETED,
            room_id=room_id,
            user_id=user_id,
            username=username,
            timestamp=self._clock(),
        )
        await self.broadcast([DISCOVERY_CHANNEL, room_channel(room_id)], event)

    async def notify_user(self, user_id: str, event: RealtimeEvent) -> None:
        await self._publish(user_channel(user_id), event)

    async def broadcast(self, channels: Iterable[str], event: RealtimeEvent) -> None:
        await asyncio.gather(*(self._publish(channel, event) for channel in channels))
