from __future__ import annotations

from collections.abc import Generator

import redis

from arena.infra.redis_client import create_redis
from arena.scheduler import RoundScheduler
from arena.singleton import get_scheduler as _get_scheduler


def get_redis() -> Generator[redis.Redis, None, None]:
    """Per-request client; overridden with fakeredis in tests."""

    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_scheduler() -> RoundScheduler:
    return _get_scheduler()
