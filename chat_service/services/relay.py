"""
Relays a Redis pub/sub channel to one connected client.

When the subscription drops, the relay reconnects with exponential backoff and,
for room channels, replays messages stored after the last one the client saw,
so a transport hiccup never leaves a silent gap.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional, Set

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError

from chat_service.core.config import settings
from chat_service.core.utils.text import now_ms
from chat_service.repositories.messages import MessageRepository
from chat_service.schemas.chat import Message
from chat_service.schemas.realtime import EventType, RealtimeEvent

logger = logging.getLogger(__name__)

Send = Callable[[dict], Awaitable[None]]


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before reconnect ``attempt`` (1-based): doubles each time, capped."""
    return min(cap, base * (2 ** (attempt - 1)))


def _message_event(message: Message) -> dict:
    return RealtimeEvent(
        type=EventType.MESSAGE,
        id=message.id,
        room_id=message.chat_room_id,
        user_id=message.user_id,
        username=message.username,
        content=message.content,
        timestamp=message.timestamp,
    ).to_payload()


class ChannelRelay:
    def __init__(
        self,
        redis: Redis,
        channel: str,
        messages: Optional[MessageRepository] = None,
        room_id: Optional[str] = None,
        base_delay: float = settings.REALTIME_RECONNECT_BASE_DELAY,
        max_delay: float = settings.REALTIME_RECONNECT_MAX_DELAY,
        max_attempts: int = settings.REALTIME_RECONNECT_MAX_ATTEMPTS,
        poll_timeout: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], int] = now_ms,
    ):
        self._redis = redis
        self._channel = channel
        self._messages = messages
        self._room_id = room_id
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._max_attempts = max_attempts
        self._poll_timeout = poll_timeout
        self._sleep = sleep
        self._clock = clock
        self._last_seen: Optional[int] = None
        # ids already delivered with timestamp == last_seen
        self._seen_at_last: Set[str] = set()
        # ids sent by the latest replay, dropped if they also arrive live
        self._replayed: Set[str] = set()

    @property
    def last_seen(self) -> Optional[int]:
        return self._last_seen

    def _seen(self, timestamp: int, message_id: Optional[str]) -> None:
        if self._last_seen is None or timestamp > self._last_seen:
            self._last_seen = timestamp
            self._seen_at_last = set()
        if timestamp == self._last_seen and message_id:
            self._seen_at_last.add(message_id)

    async def _replay(self, send: Send, after: int) -> None:
        if self._messages is None or self._room_id is None:
            return
        missed = await self._messages.get_messages_after(self._room_id, after)
        self._replayed = set()
        sent = 0
        for message in missed:
            if message.timestamp == self._last_seen and message.id in self._seen_at_last:
                continue
            self._replayed.add(message.id)
            await send(_message_event(message))
            self._seen(message.timestamp, message.id)
            sent += 1
        if sent:
            logger.info(f"Replayed {sent} message(s) on {self._channel} after {after}")

    async def _pump(self, pubsub, send: Send) -> None:
        while True:
            raw = await pubsub.get_message(ignore_subscribe_messages=True, timeout=self._poll_timeout)
            if raw is None:
                continue
            try:
                event = json.loads(raw["data"])
            except (TypeError, ValueError):
                logger.warning(f"Dropping malformed event on {self._channel}")
                continue

            if event.get("type") == EventType.MESSAGE.value:
                message_id = event.get("id")
                if message_id and message_id in self._replayed:
                    # already delivered by the resync
                    self._replayed.discard(message_id)
                    continue
                self._seen(event["timestamp"], message_id)
            await send(event)

    async def run(self, send: Send, since: Optional[int] = None) -> None:
        """
        Forwards events to ``send`` until cancelled.

        ``since`` replays stored messages newer than that timestamp first.
        After a reconnect the replay also covers the last-seen millisecond,
        skipping ids the client already has, since several messages can
        share one timestamp.
        Raises the last connection error once ``max_attempts`` consecutive
        reconnects have failed.
        """
        self._last_seen = since if since is not None else self._clock()
        self._seen_at_last = set()
        resync = since is not None
        replay_after = self._last_seen

        attempt = 0
        while True:
            pubsub = self._redis.pubsub()
            try:
                # subscribe before replaying so nothing stored in between is lost
                await pubsub.subscribe(self._channel)
                if resync:
                    await self._replay(send, replay_after)
                    resync = False
                if attempt:
                    logger.info(f"Resubscribed to {self._channel} after {attempt} attempt(s)")
                    attempt = 0
                await self._pump(pubsub, send)
            except (RedisConnectionError, RedisTimeoutError) as e:
                attempt += 1
                resync = True
                # inclusive: other messages may share the last-seen millisecond
                replay_after = self._last_seen - 1
                if attempt > self._max_attempts:
                    logger.error(f"Max reconnection attempts reached for {self._channel}: {e}")
                    raise
                delay = backoff_delay(attempt, self._base_delay, self._max_delay)
                logger.warning(f"Lost subscription to {self._channel} ({e}), retrying in {delay:.1f}s (attempt {attempt})")
                await self._sleep(delay)
            finally:
                await pubsub.aclose()
