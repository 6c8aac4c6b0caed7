"""
Shared Redis client for the directory cache.

Redis connections pool internally, so one client per process is enough.
When Redis is unreachable the getter returns None and callers read through
to the database instead.
"""

import logging
import os
from typing import Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

SOCKET_CONNECT_TIMEOUT = 2
SOCKET_TIMEOUT = 5

_redis_client: Optional[Redis] = None


async def get_redis_client() -> Optional[Redis]:
    """
    Get or create the Redis client singleton.

    Returns:
        Redis client, or None if the server cannot be reached
    """
    global _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            return _redis_client
        except Exception as e:
            logger.warning(f"Redis connection lost, recreating client: {e}")
            await close_redis_connection()

    client_kwargs = {
        "host": REDIS_HOST,
        "port": REDIS_PORT,
        "db": REDIS_DB,
        "decode_responses": True,
        "socket_connect_timeout": SOCKET_CONNECT_TIMEOUT,
        "socket_timeout": SOCKET_TIMEOUT,
        "retry_on_timeout": True,
    }
    if REDIS_PASSWORD:
        client_kwargs["password"] = REDIS_PASSWORD

    client = Redis(**client_kwargs)
    try:
        await client.ping()
    except Exception as e:
        logger.warning(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}: {e}")
        await client.aclose()
        return None

    _redis_client = client
    logger.info(f"Connected to Redis at {REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}")
    return _redis_client


async def close_redis_connection() -> None:
    """Close the shared client; called from the app lifespan on shutdown."""
    global _redis_client

    if _redis_client is None:
        return
    try:
        await _redis_client.aclose()
        logger.info("Closed Redis connection")
    except Exception as e:
        logger.warning(f"Error closing Redis connection: {e}")
    finally:
        _redis_client = None
