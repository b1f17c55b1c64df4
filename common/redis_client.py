"""
Redis client utilities for short-lived caching
"""
import json
import logging
import redis
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)

class RedisClient:
    """Redis client wrapper with utility methods

    Reads and writes raise redis.RedisError (or ValueError for undecodable
    payloads); callers decide whether a failure is fatal.
    """

    def __init__(self, url: Optional[str] = None, timeout_seconds: float = 0.5, client: Optional[redis.Redis] = None):
        if client is None:
            if not url:
                raise ValueError("either url or client is required")
            client = redis.Redis.from_url(
                url,
                decode_responses=True,
                socket_timeout=timeout_seconds,
                socket_connect_timeout=timeout_seconds,
                health_check_interval=30,
            )
        self.client = client

    def ping(self) -> bool:
        """Check Redis connectivity"""
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.warning(f"⚠️ Redis ping failed: {e}")
            return False

    def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        value = self.client.get(key)
        if value is None:
            return None
        data = json.loads(value)
        if not isinstance(data, dict):
            raise ValueError(f"unexpected cached value under {key}")
        return data

    def set_json(self, key: str, data: Dict[str, Any], ttl_seconds: int) -> bool:
        return bool(self.client.setex(key, ttl_seconds, json.dumps(data)))

    def close(self):
        self.client.close()
