"""
Redis access for the distributed order mutex.
"""

from shared.infrastructure.redis.pool import get_redis_sync_client, close_redis_pool

__all__ = ["get_redis_sync_client", "close_redis_pool"]
