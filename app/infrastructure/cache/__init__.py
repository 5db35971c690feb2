"""
Cache infrastructure module.
"""
from .redis import close_redis, get_redis, get_redis_client, ping_redis

__all__ = ["get_redis", "get_redis_client", "ping_redis", "close_redis"]
