import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import certifi
from fastapi import FastAPI
from mongoengine import connect, disconnect

from examdesk.utils.config import settings


logger = logging.getLogger(__name__)


def init_mongo() -> None:
    options = {"tlsCAFile": certifi.where()} if settings.mongo_tls else {}
    connect(host=settings.mongo_uri, alias="default", tz_aware=True, **options)
    logger.info("Connected to MongoDB database %s", settings.mongo_db)


def close_mongo() -> None:
    disconnect(alias="default")


@asynccontextmanager
async def mongo_lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_mongo()
    try:
        yield
    finally:
        close_mongo()
