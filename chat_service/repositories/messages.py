"""
Per-room message logs.

Each room keeps three keys:

- ``chatroom:{id}:messages``: sorted set scored by timestamp (epoch ms). Members
  are ``"{seq}:{message_id}"`` with a zero-padded per-room sequence number, so
  messages sharing a timestamp keep insertion order (Redis orders equal
  scores lexicographically by member).
- ``chatroom:{id}:message_data``: hash of message id -> JSON body.
- ``chatroom:{id}:message_seq``: counter feeding the sequence numbers.
"""

import json
import logging
from typing import Callable, Iterable, List, Optional

from redis.asyncio import Redis
from redis.exceptions import WatchError

from chat_service.core.config import settings
from chat_service.core.constants import DEFAULT_MESSAGE_PAGE_SIZE
from chat_service.core.errors import ConflictError
from chat_service.core.utils.text import generate_id, now_ms
from chat_service.db import keys
from chat_service.repositories.base import Outcome
from chat_service.schemas.chat import Message, MessageStats

logger = logging.getLogger(__name__)

_SEQ_WIDTH = 20


class MessageRepository:
    def __init__(
        self,
        redis: Redis,
        history_limit: int = settings.MESSAGE_HISTORY_LIMIT,
        max_page_size: int = settings.MAX_PAGE_SIZE,
        max_retries: int = settings.ROOM_UPDATE_MAX_RETRIES,
        clock: Callable[[], int] = now_ms,
    ):
        self._redis = redis
        self._history_limit = history_limit
        self._max_page_size = max_page_size
        self._max_retries = max_retries
        self._clock = clock

    @staticmethod
    def _member(seq: int, message_id: str) -> str:
        return f"{seq:0{_SEQ_WIDTH}d}:{message_id}"

    @staticmethod
    def _message_id(member: str) -> str:
        return member.split(":", 1)[1]

    async def create_message(
        self, chat_room_id: str, user_id: str, username: str, content: str
    ) -> Message:
        """
        Appends a message and evicts anything beyond the retention ceiling.

        The log key is WATCHed while the newest timestamp is read, so the new
        message is never stamped earlier than the one before it even when
        this process's clock lags. The trim runs in the same MULTI as the
        insert.
        """
        message_id = generate_id()
        log_key = keys.chat_room_messages(chat_room_id)
        keep_from = -(self._history_limit + 1)

        async with self._redis.pipeline(transaction=True) as pipe:
            for attempt in range(1, self._max_retries + 1):
                try:
                    await pipe.watch(log_key)
                    newest = await pipe.zrevrange(log_key, 0, 0, withscores=True)
                    seq = await pipe.incr(keys.chat_room_message_seq(chat_room_id))
                    timestamp = max(self._clock(), int(newest[0][1]) if newest else 0)
                    message = Message(
                        id=message_id,
                        chat_room_id=chat_room_id,
                        user_id=user_id,
                        username=username,
                        content=content,
                        timestamp=timestamp,
                    )
                    body = json.dumps({**message.model_dump(), "seq": seq})

                    pipe.multi()
                    pipe.hset(keys.chat_room_message_data(chat_room_id), message.id, body)
                    pipe.zadd(log_key, {self._member(seq, message.id): message.timestamp})
                    # everything except the newest ``history_limit`` entries
                    pipe.zrange(log_key, 0, keep_from)
                    pipe.zremrangebyrank(log_key, 0, keep_from)
                    _, _, overflow, _ = await pipe.execute()
                    break
                except WatchError:
                    logger.debug(f"Message log of room {chat_room_id} changed during append, retrying (attempt {attempt})")
            else:
                logger.error(f"Giving up appending to room {chat_room_id} after {self._max_retries} conflicting writes")
                raise ConflictError(f"Chat room {chat_room_id} is busy, please retry")

        if overflow:
            await self._drop_bodies(chat_room_id, overflow)
        return message

    async def _drop_bodies(self, chat_room_id: str, members: List[str]) -> None:
        # bodies left behind are unreachable: reads always go through the log
        await self._redis.hdel(
            keys.chat_room_message_data(chat_room_id),
            *[self._message_id(m) for m in members],
        )
        logger.debug(f"Evicted {len(members)} old message(s) from room {chat_room_id}")

    async def _load(self, chat_room_id: str, members: Iterable[str]) -> List[Message]:
        ids = [self._message_id(m) for m in members]
        if not ids:
            return []
        bodies = await self._redis.hmget(keys.chat_room_message_data(chat_room_id), ids)
        messages = []
        for message_id, body in zip(ids, bodies):
            if body is None:
                # evicted or deleted between the two reads
                continue
            try:
                messages.append(Message.model_validate_json(body))
            except ValueError as e:
                logger.error(f"Failed to parse message {message_id} in room {chat_room_id}: {e}")
        return messages

    async def get_messages(
        self,
        chat_room_id: str,
        limit: int = DEFAULT_MESSAGE_PAGE_SIZE,
        before: Optional[int] = None,
    ) -> List[Message]:
        """
        Newest-first page of history.

        ``before`` is an exclusive timestamp cursor: pass the oldest timestamp
        of the previous page to walk backwards.
        """
        limit = min(limit, self._max_page_size)
        if limit <= 0:
            return []
        max_score = f"({before}" if before is not None else "+inf"
        members = await self._redis.zrevrangebyscore(
            keys.chat_room_messages(chat_room_id), max_score, "-inf", start=0, num=limit
        )
        return await self._load(chat_room_id, members)

    async def get_messages_after(self, chat_room_id: str, timestamp: int) -> List[Message]:
        """All messages strictly newer than ``timestamp``, oldest first."""
        members = await self._redis.zrangebyscore(
            keys.chat_room_messages(chat_room_id), f"({timestamp}", "+inf"
        )
        return await self._load(chat_room_id, members)

    async def get_recent_messages(self, chat_room_id: str, count: int = 20) -> List[Message]:
        if count <= 0:
            return []
        members = await self._redis.zrevrange(keys.chat_room_messages(chat_room_id), 0, count - 1)
        messages = await self._load(chat_room_id, members)
        messages.reverse()
        return messages

    async def get_message(self, chat_room_id: str, message_id: str) -> Optional[Message]:
        body = await self._redis.hget(keys.chat_room_message_data(chat_room_id), message_id)
        if body is None:
            return None
        return Message.model_validate_json(body)

    async def delete_message(self, chat_room_id: str, message_id: str) -> Outcome:
        data_key = keys.chat_room_message_data(chat_room_id)
        body = await self._redis.hget(data_key, message_id)
        if body is None:
            return Outcome.NOT_FOUND

        seq = json.loads(body)["seq"]
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(keys.chat_room_messages(chat_room_id), self._member(seq, message_id))
            pipe.hdel(data_key, message_id)
            removed, _ = await pipe.execute()

        if not removed:
            return Outcome.NOT_FOUND
        logger.info(f"Message {message_id} removed from room {chat_room_id}")
        return Outcome.SUCCESS

    async def delete_all_messages(self, chat_room_id: str) -> None:
        await self._redis.delete(
            keys.chat_room_messages(chat_room_id),
            keys.chat_room_message_data(chat_room_id),
            keys.chat_room_message_seq(chat_room_id),
        )

    async def get_message_count(self, chat_room_id: str) -> int:
        return await self._redis.zcard(keys.chat_room_messages(chat_room_id))

    async def get_message_stats(self, chat_room_id: str) -> MessageStats:
        log_key = keys.chat_room_messages(chat_room_id)
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.zcard(log_key)
            pipe.zrange(log_key, 0, 0, withscores=True)
            pipe.zrevrange(log_key, 0, 0, withscores=True)
            total, oldest, newest = await pipe.execute()

        return MessageStats(
            total_messages=total,
            oldest_message_time=int(oldest[0][1]) if oldest else None,
            newest_message_time=int(newest[0][1]) if newest else None,
        )
