import pytest

from chat_service.db import keys
from chat_service.repositories.base import Outcome
from chat_service.repositories.messages import MessageRepository

ROOM = "room-1"


async def post(repo, clock, count, step=1):
    messages = []
    for i in range(count):
        clock.advance(step)
        messages.append(await repo.create_message(ROOM, "u1", "Alice", f"message {i}"))
    return messages


async def test_create_message_is_readable(message_repo, clock):
    message = await message_repo.create_message(ROOM, "u1", "Alice", "Hello")

    assert message.chat_room_id == ROOM
    assert message.timestamp == clock.now
    assert await message_repo.get_message(ROOM, message.id) == message
    assert await message_repo.get_messages(ROOM) == [message]


async def test_history_is_capped_at_retention_limit(message_repo, clock):
    messages = await post(message_repo, clock, 105)

    assert await message_repo.get_message_count(ROOM) == 100
    for evicted in messages[:5]:
        assert await message_repo.get_message(ROOM, evicted.id) is None

    page = await message_repo.get_messages(ROOM, limit=100)
    assert [m.id for m in page] == [m.id for m in reversed(messages[5:])]


async def test_pagination_walks_back_without_overlap(redis, clock):
    repo = MessageRepository(redis, history_limit=200, clock=clock)
    messages = await post(repo, clock, 120)

    first = await repo.get_messages(ROOM, limit=50)
    second = await repo.get_messages(ROOM, limit=50, before=first[-1].timestamp)
    third = await repo.get_messages(ROOM, limit=50, before=second[-1].timestamp)

    assert [len(first), len(second), len(third)] == [50, 50, 20]
    seen = [m.id for m in first + second + third]
    assert len(set(seen)) == 120
    assert seen == [m.id for m in reversed(messages)]


async def test_page_size_is_capped(redis, clock):
    repo = MessageRepository(redis, history_limit=200, clock=clock)
    await post(repo, clock, 150)

    assert len(await repo.get_messages(ROOM, limit=500)) == 100
    assert await repo.get_messages(ROOM, limit=0) == []


async def test_same_millisecond_keeps_insertion_order(message_repo, clock):
    first = await message_repo.create_message(ROOM, "u1", "Alice", "one")
    second = await message_repo.create_message(ROOM, "u2", "Bob", "two")
    third = await message_repo.create_message(ROOM, "u1", "Alice", "three")

    newest_first = await message_repo.get_messages(ROOM)
    assert [m.id for m in newest_first] == [third.id, second.id, first.id]

    after = await message_repo.get_messages_after(ROOM, clock.now - 1)
    assert [m.content for m in after] == ["one", "two", "three"]


async def test_timestamps_never_go_backwards_when_clock_lags(message_repo, clock):
    first = await message_repo.create_message(ROOM, "u1", "Alice", "first")
    clock.now -= 5000
    second = await message_repo.create_message(ROOM, "u2", "Bob", "second")

    assert second.timestamp == first.timestamp
    assert [m.id for m in await message_repo.get_messages(ROOM)] == [second.id, first.id]
    after = await message_repo.get_messages_after(ROOM, first.timestamp - 1)
    assert [m.id for m in after] == [first.id, second.id]

    clock.now += 10_000
    third = await message_repo.create_message(ROOM, "u1", "Alice", "third")
    assert third.timestamp == clock.now


async def test_retention_holds_when_body_cleanup_fails(redis, clock, monkeypatch):
    repo = MessageRepository(redis, history_limit=3, clock=clock)
    await post(repo, clock, 3)

    async def broken(*args):
        raise ConnectionError("connection lost")

    monkeypatch.setattr(repo, "_drop_bodies", broken)
    clock.advance()
    with pytest.raises(ConnectionError):
        await repo.create_message(ROOM, "u1", "Alice", "overflow")

    assert await repo.get_message_count(ROOM) == 3
    page = await repo.get_messages(ROOM)
    assert len(page) == 3
    assert page[0].content == "overflow"


async def test_get_messages_after_is_strict_and_ascending(message_repo, clock):
    messages = await post(message_repo, clock, 5, step=10)

    after = await message_repo.get_messages_after(ROOM, messages[1].timestamp)
    assert [m.id for m in after] == [m.id for m in messages[2:]]
    assert await message_repo.get_messages_after(ROOM, messages[-1].timestamp) == []


async def test_recent_messages_are_chronological(message_repo, clock):
    messages = await post(message_repo, clock, 30)

    recent = await message_repo.get_recent_messages(ROOM, count=20)
    assert [m.id for m in recent] == [m.id for m in messages[10:]]


async def test_delete_message(message_repo, clock):
    keep, drop = await post(message_repo, clock, 2)

    assert await message_repo.delete_message(ROOM, drop.id) is Outcome.SUCCESS
    assert await message_repo.delete_message(ROOM, drop.id) is Outcome.NOT_FOUND
    assert await message_repo.get_messages(ROOM) == [keep]
    assert await message_repo.get_message_count(ROOM) == 1


async def test_delete_all_messages_removes_every_key(message_repo, redis, clock):
    await post(message_repo, clock, 3)

    await message_repo.delete_all_messages(ROOM)

    assert await message_repo.get_messages(ROOM) == []
    assert not await redis.exists(
        keys.chat_room_messages(ROOM),
        keys.chat_room_message_data(ROOM),
        keys.chat_room_message_seq(ROOM),
    )


async def test_message_stats(message_repo, clock):
    empty = await message_repo.get_message_stats(ROOM)
    assert empty.total_messages == 0
    assert empty.oldest_message_time is None
    assert empty.newest_message_time is None

    messages = await post(message_repo, clock, 3, step=1000)
    stats = await message_repo.get_message_stats(ROOM)
    assert stats.total_messages == 3
    assert stats.oldest_message_time == messages[0].timestamp
    assert stats.newest_message_time == messages[-1].timestamp


@pytest.mark.parametrize("count", [0, -1])
async def test_recent_messages_with_non_positive_count(message_repo, count):
    await message_repo.create_message(ROOM, "u1", "Alice", "hi")
    assert await message_repo.get_recent_messages(ROOM, count=count) == []
