from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis.asyncio import Redis

from chat_service.core.errors import AuthRequiredError
from chat_service.core.utils.jwt import identity_from_token
from chat_service.db.redis import get_redis
from chat_service.repositories.messages import MessageRepository
from chat_service.repositories.rooms import RoomRepository
from chat_service.repositories.users import UserRepository
from chat_service.schemas.auth import Identity
from chat_service.services.messages import MessageService
from chat_service.services.notifications import NotificationDispatcher, RedisPublisher
from chat_service.services.profile import ProfileService
from chat_service.services.rooms import RoomService

bearer_scheme = HTTPBearer(auto_error=False)

async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    """Resolve the caller from the Bearer token issued by the host platform."""
    identity = identity_from_token(credentials.credentials if credentials else None)
    if identity is None:
        raise AuthRequiredError()
    return identity

def get_message_repository(redis: Redis = Depends(get_redis)) -> MessageRepository:
    return MessageRepository(redis)

def get_room_repository(
    redis: Redis = Depends(get_redis),
    messages: MessageRepository = Depends(get_message_repository),
) -> RoomRepository:
    return RoomRepository(redis, messages)

def get_user_repository(redis: Redis = Depends(get_redis)) -> UserRepository:
    return UserRepository(redis)

def get_dispatcher(redis: Redis = Depends(get_redis)) -> NotificationDispatcher:
    return NotificationDispatcher(RedisPublisher(redis))

def get_room_service(
    rooms: RoomRepository = Depends(get_room_repository),
    users: UserRepository = Depends(get_user_repository),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> RoomService:
    return RoomService(rooms, users, dispatcher)

def get_message_service(
    rooms: RoomRepository = Depends(get_room_repository),
    messages: MessageRepository = Depends(get_message_repository),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> MessageService:
    return MessageService(rooms, messages, dispatcher)

def get_profile_service(
    users: UserRepository = Depends(get_user_repository),
    rooms: RoomRepository = Depends(get_room_repository),
) -> ProfileService:
    return ProfileService(users, rooms)
