import asyncio

from chat_service.db import keys
from chat_service.repositories.base import Outcome
from chat_service.repositories.rooms import RoomRepository


async def make_room(repo, title="Book Club", interests=("books",), creator="alice"):
    return await repo.create_room(title, "Discussing novels weekly", creator, creator.title(), list(interests))


async def test_create_room_registers_indexes(room_repo, redis, clock):
    room = await make_room(room_repo, interests=["books", "art"])

    assert room.participants == ["alice"]
    assert room.participant_count == 1
    assert room.is_active
    assert room.created_at == room.last_activity == clock.now
    assert await room_repo.get_room(room.id) == room
    assert await redis.sismember(keys.ACTIVE_CHAT_ROOMS, room.id)
    assert await redis.sismember(keys.interest_chat_rooms("books"), room.id)
    assert await redis.sismember(keys.interest_chat_rooms("art"), room.id)


async def test_room_hash_uses_camel_case_fields(room_repo, redis):
    room = await make_room(room_repo)

    stored = await redis.hgetall(keys.chat_room(room.id))
    assert stored["creatorId"] == "alice"
    assert stored["participantCount"] == "1"
    assert stored["isActive"] == "true"


async def test_missing_room(room_repo):
    assert await room_repo.get_room("nope") is None
    assert await room_repo.join_room("nope", "bob") is Outcome.NOT_FOUND
    assert await room_repo.leave_room("nope", "bob") is Outcome.NOT_FOUND
    assert await room_repo.touch("nope") is Outcome.NOT_FOUND
    assert await room_repo.delete_room("nope", "bob") is Outcome.NOT_FOUND


async def test_join_is_idempotent(room_repo):
    room = await make_room(room_repo)

    assert await room_repo.join_room(room.id, "bob") is Outcome.SUCCESS
    assert await room_repo.join_room(room.id, "bob") is Outcome.UNCHANGED

    stored = await room_repo.get_room(room.id)
    assert stored.participants == ["alice", "bob"]
    assert stored.participant_count == 2


async def test_concurrent_joins_are_all_counted(redis, message_repo):
    repo = RoomRepository(redis, message_repo, max_retries=50)
    room = await make_room(repo)
    joiners = [f"user-{i}" for i in range(10)]

    outcomes = await asyncio.gather(*(repo.join_room(room.id, user) for user in joiners))

    assert set(outcomes) == {Outcome.SUCCESS}
    stored = await repo.get_room(room.id)
    assert sorted(stored.participants) == sorted(["alice", *joiners])
    assert stored.participant_count == 11


async def test_last_participant_leaving_deactivates(room_repo, redis):
    room = await make_room(room_repo, interests=["books", "music"])
    await room_repo.join_room(room.id, "bob")

    assert await room_repo.leave_room(room.id, "alice") is Outcome.SUCCESS
    assert (await room_repo.get_room(room.id)).is_active

    assert await room_repo.leave_room(room.id, "bob") is Outcome.SUCCESS
    stored = await room_repo.get_room(room.id)
    assert not stored.is_active
    assert stored.participants == []
    assert stored.participant_count == 0
    assert not await redis.sismember(keys.ACTIVE_CHAT_ROOMS, room.id)
    assert not await redis.sismember(keys.interest_chat_rooms("books"), room.id)
    assert not await redis.sismember(keys.interest_chat_rooms("music"), room.id)
    assert await room_repo.get_active_rooms() == []


async def test_inactive_room_cannot_be_joined(room_repo):
    room = await make_room(room_repo)
    await room_repo.leave_room(room.id, "alice")

    assert await room_repo.join_room(room.id, "bob") is Outcome.NOT_FOUND


async def test_leave_by_non_participant_changes_nothing(room_repo):
    room = await make_room(room_repo)

    assert await room_repo.leave_room(room.id, "mallory") is Outcome.UNCHANGED
    assert await room_repo.get_room(room.id) == room


async def test_delete_room_is_creator_only(room_repo, message_repo, redis):
    room = await make_room(room_repo, interests=["books"])
    await message_repo.create_message(room.id, "alice", "Alice", "Hello")

    assert await room_repo.delete_room(room.id, "bob") is Outcome.FORBIDDEN
    assert await room_repo.get_room(room.id) is not None
    assert await message_repo.get_message_count(room.id) == 1
    assert await redis.sismember(keys.ACTIVE_CHAT_ROOMS, room.id)
    assert await redis.sismember(keys.interest_chat_rooms("books"), room.id)

    assert await room_repo.delete_room(room.id, "alice") is Outcome.SUCCESS
    assert await room_repo.get_room(room.id) is None
    assert await message_repo.get_message_count(room.id) == 0
    assert not await redis.sismember(keys.ACTIVE_CHAT_ROOMS, room.id)
    assert not await redis.sismember(keys.interest_chat_rooms("books"), room.id)


async def test_active_rooms_most_recent_first(room_repo, clock):
    older = await make_room(room_repo, title="Older")
    clock.advance(1000)
    newer = await make_room(room_repo, title="Newer")

    assert [r.id for r in await room_repo.get_active_rooms()] == [newer.id, older.id]

    clock.advance(1000)
    assert await room_repo.touch(older.id) is Outcome.SUCCESS
    assert [r.id for r in await room_repo.get_active_rooms()] == [older.id, newer.id]


async def test_touch_never_moves_activity_backwards(room_repo, clock):
    room = await make_room(room_repo)
    clock.now -= 5000

    await room_repo.touch(room.id)
    assert (await room_repo.get_room(room.id)).last_activity == room.last_activity


async def test_stale_active_entries_are_pruned(room_repo, redis):
    room = await make_room(room_repo)
    await redis.sadd(keys.ACTIVE_CHAT_ROOMS, "ghost")

    assert [r.id for r in await room_repo.get_active_rooms()] == [room.id]
    assert await redis.smembers(keys.ACTIVE_CHAT_ROOMS) == {room.id}


async def test_rooms_by_interests_rank_by_overlap(room_repo, clock):
    both = await make_room(room_repo, title="Both", interests=["gaming", "technology"])
    clock.advance(1000)
    gaming = await make_room(room_repo, title="Gaming", interests=["gaming"])
    clock.advance(1000)
    await make_room(room_repo, title="Cooking", interests=["food"])

    ranked = await room_repo.get_rooms_by_interests(["gaming", "technology"])
    assert [r.id for r in ranked] == [both.id, gaming.id]


async def test_rooms_by_empty_interests_fall_back_to_active(room_repo):
    room = await make_room(room_repo)
    assert [r.id for r in await room_repo.get_rooms_by_interests([])] == [room.id]


async def test_search_is_case_insensitive(room_repo):
    books = await make_room(room_repo, title="Book Club", interests=["books"])
    games = await make_room(room_repo, title="Speedrunners", interests=["gaming"])

    assert [r.id for r in await room_repo.search_rooms("BOOK")] == [books.id]
    assert [r.id for r in await room_repo.search_rooms("novels")] != []
    assert [r.id for r in await room_repo.search_rooms("gaming")] == [games.id]
    assert await room_repo.search_rooms("astronomy") == []


async def test_interest_counts(room_repo):
    await make_room(room_repo, interests=["books", "art"])
    await make_room(room_repo, interests=["books"])

    counts = await room_repo.interest_counts()
    assert counts["books"] == 2
    assert counts["art"] == 1
    assert counts["gaming"] == 0
    assert await room_repo.count_rooms_for_interest("books") == 2
