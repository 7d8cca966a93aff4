"""
Chat room records, membership and discovery indexes.

A room lives in the ``chatroom:{id}`` hash. Active rooms are additionally
registered in the ``active_chatrooms`` set and in one ``interests:{tag}`` set
per tag; deactivation removes them from both while the record stays readable.

Membership changes are optimistic transactions: the room key is WATCHed, the
record read and the new state written under MULTI/EXEC. A concurrent writer
aborts the EXEC with ``WatchError`` and the update is replayed, so concurrent
joiners are never lost.
"""

import json
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from redis.asyncio import Redis
from redis.asyncio.client import Pipeline
from redis.exceptions import WatchError

from chat_service.core.config import settings
from chat_service.core.constants import INTEREST_TAGS
from chat_service.core.errors import ConflictError
from chat_service.core.utils.text import generate_id, now_ms
from chat_service.db import keys
from chat_service.repositories.base import Outcome
from chat_service.repositories.messages import MessageRepository
from chat_service.schemas.chat import ChatRoom

logger = logging.getLogger(__name__)

Write = Optional[Callable[[Pipeline], None]]
Plan = Callable[[Optional[ChatRoom]], Tuple[Outcome, Write]]


def _encode_room(room: ChatRoom) -> Dict[str, str]:
    return {
        "id": room.id,
        "title": room.title,
        "topic": room.topic,
        "creatorId": room.creator_id,
        "creatorUsername": room.creator_username,
        "participants": json.dumps(room.participants),
        "participantCount": str(len(room.participants)),
        "interests": json.dumps(room.interests),
        "isActive": "true" if room.is_active else "false",
        "createdAt": str(room.created_at),
        "lastActivity": str(room.last_activity),
    }


def _decode_room(data: Dict[str, str]) -> Optional[ChatRoom]:
    if not data or not data.get("id"):
        return None
    return ChatRoom(
        id=data["id"],
        title=data.get("title", ""),
        topic=data.get("topic", ""),
        creator_id=data.get("creatorId", ""),
        creator_username=data.get("creatorUsername", ""),
        participants=json.loads(data.get("participants") or "[]"),
        participant_count=int(data.get("participantCount") or 0),
        interests=json.loads(data.get("interests") or "[]"),
        is_active=data.get("isActive") == "true",
        created_at=int(data.get("createdAt") or 0),
        last_activity=int(data.get("lastActivity") or 0),
    )


def _by_activity(room: ChatRoom) -> Tuple[int, int]:
    return room.last_activity, room.created_at


class RoomRepository:
    def __init__(
        self,
        redis: Redis,
        messages: MessageRepository,
        max_retries: int = settings.ROOM_UPDATE_MAX_RETRIES,
        clock: Callable[[], int] = now_ms,
    ):
        self._redis = redis
        self._messages = messages
        self._max_retries = max_retries
        self._clock = clock

    # ── reads ──

    async def get_room(self, room_id: str) -> Optional[ChatRoom]:
        return _decode_room(await self._redis.hgetall(keys.chat_room(room_id)))

    async def _load_rooms(self, room_ids: Iterable[str]) -> List[ChatRoom]:
        room_ids = list(room_ids)
        if not room_ids:
            return []
        async with self._redis.pipeline(transaction=False) as pipe:
            for room_id in room_ids:
                pipe.hgetall(keys.chat_room(room_id))
            results = await pipe.execute()
        return [room for room in map(_decode_room, results) if room is not None]

    async def get_active_rooms(self) -> List[ChatRoom]:
        """All active rooms, most recently active first."""
        room_ids = await self._redis.smembers(keys.ACTIVE_CHAT_ROOMS)
        rooms = [room for room in await self._load_rooms(room_ids) if room.is_active]

        stale = set(room_ids) - {room.id for room in rooms}
        if stale:
            await self._redis.srem(keys.ACTIVE_CHAT_ROOMS, *stale)
            logger.warning(f"Pruned {len(stale)} stale entries from the active room index")

        return sorted(rooms, key=_by_activity, reverse=True)

    async def get_rooms_by_interests(self, interests: List[str]) -> List[ChatRoom]:
        """
        Active rooms tagged with any of ``interests``.

        Ranked by how many of the requested tags a room carries, then by most
        recent activity.
        """
        wanted = set(interests)
        if not wanted:
            return await self.get_active_rooms()

        room_ids = await self._redis.sunion([keys.interest_chat_rooms(tag) for tag in wanted])
        rooms = [room for room in await self._load_rooms(room_ids) if room.is_active]

        def rank(room: ChatRoom) -> Tuple[int, int, int]:
            matches = sum(1 for tag in room.interests if tag in wanted)
            return (matches, *_by_activity(room))

        return sorted(rooms, key=rank, reverse=True)

    async def search_rooms(self, query: str) -> List[ChatRoom]:
        needle = query.lower()
        return [
            room
            for room in await self.get_active_rooms()
            if needle in room.title.lower()
            or needle in room.topic.lower()
            or any(needle in tag.lower() for tag in room.interests)
        ]

    async def interest_counts(self) -> Dict[str, int]:
        """Number of active rooms indexed under each catalog tag."""
        async with self._redis.pipeline(transaction=False) as pipe:
            for tag in INTEREST_TAGS:
                pipe.scard(keys.interest_chat_rooms(tag["id"]))
            counts = await pipe.execute()
        return {tag["id"]: count for tag, count in zip(INTEREST_TAGS, counts)}

    async def count_rooms_for_interest(self, tag: str) -> int:
        return await self._redis.scard(keys.interest_chat_rooms(tag))

    # ── writes ──

    async def create_room(
        self,
        title: str,
        topic: str,
        creator_id: str,
        creator_username: str,
        interests: List[str],
    ) -> ChatRoom:
        now = self._clock()
        room = ChatRoom(
            id=generate_id(),
            title=title,
            topic=topic,
            creator_id=creator_id,
            creator_username=creator_username,
            participants=[creator_id],
            participant_count=1,
            interests=list(interests),
            is_active=True,
            created_at=now,
            last_activity=now,
        )

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(keys.chat_room(room.id), mapping=_encode_room(room))
            pipe.sadd(keys.ACTIVE_CHAT_ROOMS, room.id)
            for tag in room.interests:
                pipe.sadd(keys.interest_chat_rooms(tag), room.id)
            await pipe.execute()

        logger.info(f"Chat room {room.id} created by {creator_id}")
        return room

    async def _transact(self, room_id: str, plan: Plan) -> Outcome:
        """
        Optimistic read-modify-write of one room.

        ``plan`` gets the current record (``None`` when absent) and returns the
        outcome plus a callback queueing the writes, or ``None`` for no write.
        """
        key = keys.chat_room(room_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            for attempt in range(1, self._max_retries + 1):
                try:
                    await pipe.watch(key)
                    room = _decode_room(await pipe.hgetall(key))
                    outcome, write = plan(room)
                    if write is None:
                        return outcome
                    pipe.multi()
                    write(pipe)
                    await pipe.execute()
                    return outcome
                except WatchError:
                    logger.debug(f"Room {room_id} changed during update, retrying (attempt {attempt})")

        logger.error(f"Giving up on room {room_id} after {self._max_retries} conflicting updates")
        raise ConflictError(f"Chat room {room_id} is busy, please retry")

    def _touched(self, room: ChatRoom) -> str:
        return str(max(self._clock(), room.last_activity))

    @staticmethod
    def _queue_deactivation(pipe: Pipeline, room: ChatRoom) -> None:
        pipe.hset(
            keys.chat_room(room.id),
            mapping={"isActive": "false", "participants": "[]", "participantCount": "0"},
        )
        pipe.srem(keys.ACTIVE_CHAT_ROOMS, room.id)
        for tag in room.interests:
            pipe.srem(keys.interest_chat_rooms(tag), room.id)

    async def join_room(self, room_id: str, user_id: str) -> Outcome:
        def plan(room: Optional[ChatRoom]) -> Tuple[Outcome, Write]:
            if room is None or not room.is_active:
                return Outcome.NOT_FOUND, None
            if user_id in room.participants:
                return Outcome.UNCHANGED, None

            participants = room.participants + [user_id]

            def write(pipe: Pipeline) -> None:
                pipe.hset(keys.chat_room(room_id), mapping={
                    "participants": json.dumps(participants),
                    "participantCount": str(len(participants)),
                    "lastActivity": self._touched(room),
                })

            return Outcome.SUCCESS, write

        outcome = await self._transact(room_id, plan)
        if outcome is Outcome.SUCCESS:
            logger.info(f"User {user_id} joined chat room {room_id}")
        return outcome

    async def leave_room(self, room_id: str, user_id: str) -> Outcome:
        """Removes a participant; the last one out deactivates the room."""
        deactivated = False

        def plan(room: Optional[ChatRoom]) -> Tuple[Outcome, Write]:
            nonlocal deactivated
            if room is None:
                return Outcome.NOT_FOUND, None
            if user_id not in room.participants:
                return Outcome.UNCHANGED, None

            participants = [p for p in room.participants if p != user_id]
            deactivated = not participants

            def write(pipe: Pipeline) -> None:
                if not participants:
                    self._queue_deactivation(pipe, room)
                pipe.hset(keys.chat_room(room_id), mapping={
                    "participants": json.dumps(participants),
                    "participantCount": str(len(participants)),
                    "lastActivity": self._touched(room),
                })

            return Outcome.SUCCESS, write

        outcome = await self._transact(room_id, plan)
        if outcome is Outcome.SUCCESS:
            logger.info(f"User {user_id} left chat room {room_id}")
            if deactivated:
                logger.info(f"Chat room {room_id} deactivated, no participants left")
        return outcome

    async def touch(self, room_id: str) -> Outcome:
        def plan(room: Optional[ChatRoom]) -> Tuple[Outcome, Write]:
            if room is None:
                return Outcome.NOT_FOUND, None

            def write(pipe: Pipeline) -> None:
                pipe.hset(keys.chat_room(room_id), "lastActivity", self._touched(room))

            return Outcome.SUCCESS, write

        return await self._transact(room_id, plan)

    async def delete_room(self, room_id: str, requester_id: str) -> Outcome:
        """Creator-only: deactivates, drops the record and purges the message log."""

        def plan(room: Optional[ChatRoom]) -> Tuple[Outcome, Write]:
            if room is None:
                return Outcome.NOT_FOUND, None
            if room.creator_id != requester_id:
                return Outcome.FORBIDDEN, None

            def write(pipe: Pipeline) -> None:
                self._queue_deactivation(pipe, room)
                pipe.delete(keys.chat_room(room_id))

            return Outcome.SUCCESS, write

        outcome = await self._transact(room_id, plan)
        if outcome is Outcome.SUCCESS:
            await self._messages.delete_all_messages(room_id)
            logger.info(f"Chat room {room_id} deleted by {requester_id}")
        elif outcome is Outcome.FORBIDDEN:
            logger.warning(f"User {requester_id} attempted to delete chat room {room_id} they do not own")
        return outcome
