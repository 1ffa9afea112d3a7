from examdesk.connections.mongo import close_mongo, init_mongo, mongo_lifespan
from examdesk.connections.redis import close_redis, get_redis, init_redis, redis_lifespan

__all__ = [
    "init_mongo",
    "close_mongo",
    "mongo_lifespan",
    "get_redis",
    "init_redis",
    "close_redis",
    "redis_lifespan",
]
