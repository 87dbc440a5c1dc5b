from redis.asyncio import Redis

from app.core.config import get_settings
from app.stores.token_store import MemoryTokenStore, RedisTokenStore, TokenStore


settings = get_settings()

redis_client = Redis.from_url(
    settings.redis_url,
    decode_responses=True,
    socket_timeout=settings.redis_socket_timeout_seconds,
    socket_connect_timeout=settings.redis_socket_timeout_seconds,
)

_memory_store = MemoryTokenStore()


def get_token_store() -> TokenStore:
    if settings.token_store_backend == "memory":
        return _memory_store
    return RedisTokenStore(redis_client)


async def close_redis():
    await redis_client.aclose()
