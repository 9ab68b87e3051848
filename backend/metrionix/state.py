"""
Application State
=================

Process-wide Redis client shared across requests.

WHAT it stores:
- redis_pool: Shared Redis connection pool
- redis_client: Shared Redis client (OAuth transit state lives here)

WHERE it's used:
- metrionix/main.py: Initializes on startup
- metrionix/deps.py: Builds the RedisTransitStateStore per request
- metrionix/workers/arq_worker.py: ARQ manages its own Redis connection
"""

import logging
from typing import Optional

from redis import ConnectionPool, Redis

logger = logging.getLogger(__name__)

redis_pool: Optional[ConnectionPool] = None
redis_client: Optional[Redis] = None


def init_redis(redis_url: str) -> Optional[Redis]:
    """Create the shared pool and verify connectivity.

    Failure is logged, not raised: the app still serves sync and webhook
    traffic, and OAuth endpoints answer 503 until Redis is reachable.
    """
    global redis_pool, redis_client
    try:
        redis_pool = ConnectionPool.from_url(redis_url, max_connections=20, decode_responses=False)
        client = Redis(connection_pool=redis_pool)
        client.ping()
        redis_client = client
        logger.info("[STATE] Shared Redis connection pool initialized (max_connections=20)")
    except Exception as e:
        logger.error(f"[STATE] Failed to initialize Redis: {e}")
        logger.warning("[STATE] OAuth endpoints unavailable until Redis is configured")
        redis_client = None
    return redis_client


def close_redis() -> None:
    global redis_pool, redis_client
    if redis_pool is not None:
        redis_pool.disconnect()
    redis_pool = None
    redis_client = None
