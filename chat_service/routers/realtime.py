"""
WebSocket fan-out of the notification channels.

Browsers cannot set headers on a WebSocket handshake, so the bearer token
travels in the ``token`` query parameter. Closing the socket only drops the
subscription; it never removes the caller from a room.
"""

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
from typing import Optional
import asyncio
import logging

from chat_service.core.constants import DISCOVERY_CHANNEL, room_channel, user_channel
from chat_service.core.utils.dependencies import get_message_repository, get_room_repository
from chat_service.core.utils.jwt import identity_from_token
from chat_service.db.redis import get_redis
from chat_service.repositories.messages import MessageRepository
from chat_service.repositories.rooms import RoomRepository
from chat_service.schemas.auth import Identity
from chat_service.services.relay import ChannelRelay

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["realtime"])

async def _authenticate(websocket: WebSocket, token: Optional[str]) -> Optional[Identity]:
    identity = identity_from_token(token)
    if identity is None:
        logger.warning("Rejected WebSocket connection without a valid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    return identity

async def _drain(websocket: WebSocket) -> None:
    # clients do not send anything meaningful; reading detects the disconnect
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass

async def _serve(websocket: WebSocket, relay: ChannelRelay, channel: str, since: Optional[int] = None) -> None:
    await websocket.accept()
    forward = asyncio.create_task(relay.run(websocket.send_json, since))
    drain = asyncio.create_task(_drain(websocket))

    done, pending = await asyncio.wait({forward, drain}, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    error = forward.exception() if forward in done else None
    if isinstance(error, (RedisConnectionError, RedisTimeoutError)):
        logger.error(f"Relay for {channel} stopped: {error}")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    elif error is not None and not isinstance(error, WebSocketDisconnect):
        raise error
    else:
        logger.info(f"WebSocket on {channel} closed")

@router.websocket("/discovery")
async def discovery_events(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    redis: Redis = Depends(get_redis),
):
    """Room created/deleted announcements."""
    if await _authenticate(websocket, token) is None:
        return
    await _serve(websocket, ChannelRelay(redis, DISCOVERY_CHANNEL), DISCOVERY_CHANNEL)

@router.websocket("/user")
async def user_events(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    redis: Redis = Depends(get_redis),
):
    """Events addressed to the caller only."""
    identity = await _authenticate(websocket, token)
    if identity is None:
        return
    channel = user_channel(identity.user_id)
    await _serve(websocket, ChannelRelay(redis, channel), channel)

@router.websocket("/rooms/{room_id}")
async def room_events(
    websocket: WebSocket,
    room_id: str,
    token: Optional[str] = Query(None),
    since: Optional[int] = Query(None),
    redis: Redis = Depends(get_redis),
    rooms: RoomRepository = Depends(get_room_repository),
    messages: MessageRepository = Depends(get_message_repository),
):
    """
    Live messages and membership changes of one room.

    With ``since`` (milliseconds), stored messages newer than that timestamp
    are sent first.
    """
    identity = await _authenticate(websocket, token)
    if identity is None:
        return

    room = await rooms.get_room(room_id)
    if room is None or identity.user_id not in room.participants:
        logger.warning(f"User {identity.user_id} denied subscription to chat room {room_id}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    channel = room_channel(room_id)
    relay = ChannelRelay(redis, channel, messages=messages, room_id=room_id)
    await _serve(websocket, relay, channel, since)
