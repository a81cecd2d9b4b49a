import json
import logging
from typing import Any, Dict, Optional

import redis

from app.config import settings

logger = logging.getLogger(__name__)


class RedisService:
    """Read-through cache of user credit balances.

    Every method degrades to a cache miss when Redis is not configured or not
    reachable; the database stays the source of truth.
    """

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: int = 300, client=None):
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.redis_client = client
        if client is None:
            self.connect()

    @property
    def available(self) -> bool:
        return self.redis_client is not None

    def connect(self):
        try:
            if self.redis_url:
                self.redis_client = redis.from_url(
                    self.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True
                )
                # Test connection
                self.redis_client.ping()
                logger.info("Redis connected successfully")
            else:
                logger.info("No Redis URL provided, credit cache disabled")
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis connection failed: {e}")
            self.redis_client = None

    def ping(self) -> bool:
        try:
            if self.redis_client:
                self.redis_client.ping()
                return True
            return False
        except redis.RedisError:
            return False

    @staticmethod
    def credits_key(user_id: str) -> str:
        return f"credits:{user_id}"

    def get_balance(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Cached {"credits": int, "name": str} for a user, or None on a miss."""
        if not self.available:
            return None
        try:
            result = self.redis_client.get(self.credits_key(user_id))
            if result is None:
                return None
            data = json.loads(result)
            return {"credits": int(data["credits"]), "name": data.get("name")}
        except (redis.RedisError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Redis credit lookup error: {e}")
            return None

    def set_balance(self, user_id: str, credits: int, name: Optional[str] = None) -> bool:
        if not self.available:
            return False
        try:
            payload = json.dumps({"credits": credits, "name": name})
            return bool(self.redis_client.setex(self.credits_key(user_id), self.ttl_seconds, payload))
        except redis.RedisError as e:
            logger.warning(f"Redis credit store error: {e}")
            return False

    def invalidate(self, user_id: str) -> bool:
        if not self.available:
            return False
        try:
            self.redis_client.delete(self.credits_key(user_id))
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis credit invalidation error: {e}")
            return False


# Global Redis instance
redis_service = RedisService(settings.redis_url, settings.credit_cache_ttl_seconds)


def get_credit_cache() -> RedisService:
    return redis_service
