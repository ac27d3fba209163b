# brokerdesk/db/redis_client.py
import redis.asyncio as redis

from brokerdesk.core.config import settings

# Create a Redis client instance
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

async def get_redis():
    """
    Dependency to provide Redis client in FastAPI endpoints
    Usage: `redis: Redis = Depends(get_redis)`
    """
    # The client persists for the app lifetime; nothing to close per request
    yield redis_client
