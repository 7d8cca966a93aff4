"""
Async Redis connection used as the single store of record.
"""

from starlette.requests import HTTPConnection
from redis.asyncio import Redis

from chat_service.core.config import settings

def create_redis(url: str | None = None) -> Redis:
    """Build a client; connections are opened lazily by the pool."""
    return Redis.from_url(url or settings.REDIS_URL, decode_responses=True)

async def get_redis(connection: HTTPConnection) -> Redis:
    """FastAPI dependency returning the client created in the app lifespan."""
    return connection.app.state.redis
