# blogdesk/infrastructure/redis_client.py
import os

import redis.asyncio as aioredis
from redis.exceptions import RedisError
import structlog

logger = structlog.get_logger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# shared by the change transport and the sign-out blacklist
redis_client = aioredis.from_url(REDIS_URL, decode_responses=True)


async def redis_available() -> bool:
    try:
        return bool(await redis_client.ping())
    except (RedisError, OSError) as exc:
        logger.warning("redis_unavailable", url=REDIS_URL, error=str(exc))
        return False
