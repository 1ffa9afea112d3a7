import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis
from fastapi import FastAPI

from examdesk.utils.config import settings


logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


def get_redis() -> redis.Redis:
    """Shared client for the lifecycle-route cooldown keys."""
    if _client is None:
        raise RuntimeError("Redis not initialized; call init_redis() first")
    return _client


def init_redis() -> redis.Redis:
    global _client
    _client = redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        password=settings.redis_password,
        decode_responses=True,
        socket_timeout=2.0,
    )
    logger.info("Redis client configured for %s:%s/%s", settings.redis_host, settings.redis_port, settings.redis_db)
    return _client


def close_redis() -> None:
    global _client
    if _client is None:
        return
    try:
        _client.close()
    finally:
        _client = None
        logger.info("Redis client closed")


@asynccontextmanager
async def redis_lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_redis()
    try:
        yield
    finally:
        close_redis()
