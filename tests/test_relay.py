import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from chat_service.services.relay import ChannelRelay, backoff_delay


class Stop(Exception):
    pass


class StubPubSub:
    """Plays back a script of payloads and errors."""

    def __init__(self, script):
        self.script = list(script)
        self.channels = []
        self.closed = False

    async def subscribe(self, channel):
        self.channels.append(channel)

    async def get_message(self, ignore_subscribe_messages=True, timeout=None):
        if not self.script:
            raise AssertionError("script exhausted")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if item is None:
            return None
        data = item if isinstance(item, str) else json.dumps(item)
        return {"type": "message", "channel": "room:r1", "data": data}

    async def aclose(self):
        self.closed = True


class StubRedis:
    def __init__(self, *pubsubs):
        self.pubsubs = list(pubsubs)

    def pubsub(self):
        pubsub = self.pubsubs.pop(0)
        return pubsub


class Collector:
    def __init__(self, stop_after):
        self.events = []
        self.stop_after = stop_after

    async def __call__(self, event):
        self.events.append(event)
        if len(self.events) >= self.stop_after:
            raise Stop()


def recording_sleep(delays):
    async def sleep(delay):
        delays.append(delay)
    return sleep


def live_event(content, timestamp, user_id="u2", message_id=None):
    event = {"type": "message", "roomId": "r1", "userId": user_id, "username": "Bob",
             "content": content, "timestamp": timestamp}
    if message_id:
        event["id"] = message_id
    return event


@pytest.mark.parametrize("attempt, expected", [(1, 1.0), (2, 2.0), (3, 4.0), (6, 30.0), (20, 30.0)])
def test_backoff_delay_doubles_up_to_cap(attempt, expected):
    assert backoff_delay(attempt, 1.0, 30.0) == expected


async def test_forwards_live_events_and_skips_noise():
    pubsub = StubPubSub([None, "not json", live_event("hi", 10), {"type": "user_joined", "userId": "u3",
                                                                   "username": "Carol", "timestamp": 11}])
    send = Collector(stop_after=2)
    relay = ChannelRelay(StubRedis(pubsub), "room:r1", clock=lambda: 0)

    with pytest.raises(Stop):
        await relay.run(send)

    assert [e["type"] for e in send.events] == ["message", "user_joined"]
    assert pubsub.channels == ["room:r1"]
    assert pubsub.closed
    assert relay.last_seen == 10


async def test_since_replays_stored_messages_first(message_repo, clock):
    stored = await message_repo.create_message("r1", "u1", "Alice", "missed")
    pubsub = StubPubSub([live_event("live", stored.timestamp + 5)])
    send = Collector(stop_after=2)
    relay = ChannelRelay(StubRedis(pubsub), "room:r1", messages=message_repo, room_id="r1")

    with pytest.raises(Stop):
        await relay.run(send, since=stored.timestamp - 1)

    assert [e["content"] for e in send.events] == ["missed", "live"]


async def test_reconnects_with_backoff_and_resyncs(message_repo, clock):
    delays = []
    first = StubPubSub([RedisConnectionError("connection reset")])

    # stored while the subscription was down
    clock.advance(100)
    missed = await message_repo.create_message("r1", "u2", "Bob", "while you were away")
    duplicate = live_event(missed.content, missed.timestamp, message_id=missed.id)
    second = StubPubSub([duplicate, live_event("fresh", missed.timestamp + 1)])

    relay = ChannelRelay(
        StubRedis(first, second), "room:r1", messages=message_repo, room_id="r1",
        base_delay=1.0, max_delay=30.0, max_attempts=5,
        sleep=recording_sleep(delays), clock=lambda: missed.timestamp - 50,
    )
    send = Collector(stop_after=2)

    with pytest.raises(Stop):
        await relay.run(send)

    assert delays == [1.0]
    assert [e["content"] for e in send.events] == ["while you were away", "fresh"]
    assert first.closed and second.closed
    assert relay.last_seen == missed.timestamp + 1


async def test_resync_recovers_messages_sharing_the_last_seen_millisecond(message_repo, clock):
    delivered = await message_repo.create_message("r1", "u1", "Alice", "same")
    # stored in the same millisecond while the subscription was down
    missed = await message_repo.create_message("r1", "u2", "Bob", "same")
    assert missed.timestamp == delivered.timestamp

    first = StubPubSub([
        live_event(delivered.content, delivered.timestamp, user_id="u1", message_id=delivered.id),
        RedisConnectionError("connection reset"),
    ])
    second = StubPubSub([
        live_event(missed.content, missed.timestamp, message_id=missed.id),
        # identical text and timestamp, but a different message
        live_event(missed.content, missed.timestamp, message_id="another"),
    ])
    relay = ChannelRelay(
        StubRedis(first, second), "room:r1", messages=message_repo, room_id="r1",
        sleep=recording_sleep([]), clock=lambda: delivered.timestamp - 1,
    )
    send = Collector(stop_after=3)

    with pytest.raises(Stop):
        await relay.run(send)

    assert [e["id"] for e in send.events] == [delivered.id, missed.id, "another"]


async def test_gives_up_after_max_attempts():
    delays = []
    pubsubs = [StubPubSub([RedisConnectionError("down")]) for _ in range(4)]
    relay = ChannelRelay(
        StubRedis(*pubsubs), "discovery", base_delay=1.0, max_delay=30.0, max_attempts=3,
        sleep=recording_sleep(delays),
    )

    with pytest.raises(RedisConnectionError):
        await relay.run(Collector(stop_after=1))

    assert delays == [1.0, 2.0, 4.0]
    assert all(p.closed for p in pubsubs)
