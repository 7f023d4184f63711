"""
Redis client construction for the cache layer
Supports both standard Redis and managed Redis via URL
"""

import logging

import redis

from . import config

logger = logging.getLogger(__name__)


def _mask_url(redis_url: str) -> str:
    if "@" in redis_url:
        url_parts = redis_url.split("@")
        protocol = url_parts[0].split(":")[0]
        return f"{protocol}:****@{url_parts[1]}"
    return "****"


def create_redis_client() -> redis.Redis:
    """
    Create a Redis client from configuration and test the connection.

    The caller owns the returned client and must close it at shutdown.
    """
    if config.REDIS_URL:
        logger.info(f"📡 Using Redis URL connection: {_mask_url(config.REDIS_URL)}")
        client = redis.from_url(
            config.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=15,
            socket_timeout=30,
            retry_on_timeout=True,
            health_check_interval=30,
            max_connections=20,
        )
    else:
        logger.info(
            f"📡 Using Redis at {config.REDIS_HOST}:{config.REDIS_PORT} "
            f"(db={config.REDIS_DB}, ssl={'on' if config.REDIS_SSL else 'off'})"
        )
        client = redis.Redis(
            host=config.REDIS_HOST,
            port=config.REDIS_PORT,
            password=config.REDIS_PASSWORD,
            db=config.REDIS_DB,
            ssl=config.REDIS_SSL,
            decode_responses=True,
            socket_connect_timeout=15,
            socket_timeout=30,
            retry_on_timeout=True,
            health_check_interval=30,
            max_connections=20,
        )

    try:
        client.ping()
        logger.info("Redis connected successfully")
    except redis.RedisError as e:
        logger.error(f"❌ Failed to connect to Redis: {str(e)}")
        client.close()
        raise

    return client
