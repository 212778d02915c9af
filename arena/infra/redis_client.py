from __future__ import annotations

import logging
import os

import redis

logger = logging.getLogger(__name__)

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def redis_url_from_env() -> str:
    return os.environ.get("REDIS_URL", DEFAULT_REDIS_URL)


def create_redis(url: str | None = None) -> redis.Redis:
    """Room documents and event streams are JSON text, so responses are decoded to str."""

    return redis.Redis.from_url(url or redis_url_from_env(), decode_responses=True)


def redis_available(r: redis.Redis) -> bool:
    try:
        return bool(r.ping())
    except redis.RedisError as e:
        logger.warning("Redis ping failed: %s", e)
        return False
