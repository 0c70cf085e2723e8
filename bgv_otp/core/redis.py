import logging
import time

import redis
from redis.connection import ConnectionPool
from typing import Optional
from bgv_otp.core.config import settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Seconds to wait before trying again after a failed connection
RECONNECT_BACKOFF_SECONDS = 30


class RedisClient:
    """Redis client for request throttling at the API boundary"""

    _client: Optional[redis.Redis] = None
    _pool: Optional[ConnectionPool] = None
    _is_available: bool = False
    _retry_at: float = 0.0

    @classmethod
    def get_client(cls) -> Optional[redis.Redis]:
        """Get or create Redis client instance with connection pooling"""
        if not settings.REDIS_HOST:
            return None

        if cls._client is None:
            try:
                cls._pool = ConnectionPool(
                    host=settings.REDIS_HOST,
                    port=settings.REDIS_PORT,
                    password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
                    db=settings.REDIS_DB,
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                    retry_on_timeout=True,
                    max_connections=20,
                    health_check_interval=15,
                )

                cls._client = redis.Redis(connection_pool=cls._pool)

                # Test connection
                cls._client.ping()
                cls._is_available = True
                logger.info("Redis connected (%s:%s)", settings.REDIS_HOST, settings.REDIS_PORT)
            except redis.RedisError as e:
                logger.warning("Redis connection failed: %s", e)
                cls._client = None
                cls._pool = None
                cls._is_available = False
                cls._retry_at = time.monotonic() + RECONNECT_BACKOFF_SECONDS
                raise

        return cls._client

    @classmethod
    def is_available(cls) -> bool:
        """Check if Redis is connected, or due for another connection attempt"""
        if not settings.REDIS_HOST:
            return False
        return cls._is_available or time.monotonic() >= cls._retry_at

    @classmethod
    def mark_unavailable(cls, error: redis.RedisError):
        """Drop a broken connection so callers skip Redis until the backoff ends"""
        if not isinstance(error, (redis.ConnectionError, redis.TimeoutError)):
            return
        logger.warning("Redis unavailable, retrying in %ss: %s", RECONNECT_BACKOFF_SECONDS, error)
        cls.close()
        cls._retry_at = time.monotonic() + RECONNECT_BACKOFF_SECONDS

    @classmethod
    def close(cls):
        """Close Redis connection"""
        if cls._client:
            cls._client.close()
            cls._client = None
        if cls._pool:
            cls._pool.disconnect()
            cls._pool = None
        cls._is_available = False
        logger.info("Redis connection closed")


def get_redis() -> Optional[redis.Redis]:
    """Dependency to get Redis client"""
    if not RedisClient.is_available():
        return None
    try:
        return RedisClient.get_client()
    except redis.RedisError:
        return None


# Cache key generators
class CacheKeys:
    """Redis cache key patterns"""

    @staticmethod
    def rate_limit(identifier: str, action: str) -> str:
        """Rate limiting key"""
        return f"rate_limit:{action}:{identifier}"

    @staticmethod
    def resend_cooldown(mobile_number: str, purpose: str) -> str:
        """Resend cooldown key, one per (phone, purpose)"""
        return f"otp:cooldown:{purpose}:{mobile_number}"


class RedisOps:
    """Common Redis operations"""

    @staticmethod
    def set_if_absent(key: str, value: str, expire_seconds: int) -> bool:
        """Set a key with expiration only if it does not exist yet"""
        client = get_redis()
        if not client:
            return True
        return bool(client.set(key, value, ex=expire_seconds, nx=True))

    @staticmethod
    def delete(key: str) -> int:
        """Delete a key"""
        client = get_redis()
        if not client:
            return 0
        return client.delete(key)

    @staticmethod
    def ttl(key: str) -> int:
        """Get time to live for key"""
        client = get_redis()
        if not client:
            return -1
        return client.ttl(key)


class RateLimiter:
    """Rate limiting using Redis"""

    @staticmethod
    def check_rate_limit(
        identifier: str,
        action: str,
        max_requests: int,
        window_seconds: int
    ) -> tuple[bool, int]:
        """
        Check if request is within rate limit.
        Uses pipeline for single round-trip to Redis.

        Returns:
            (is_allowed, remaining_requests)
        """
        client = get_redis()

        if not client:
            # If Redis not available, allow request (fallback)
            return True, max_requests

        key = CacheKeys.rate_limit(identifier, action)

        try:
            pipe = client.pipeline()
            pipe.incr(key)
            pipe.expire(key, window_seconds)
            results = pipe.execute()

            current = results[0]  # Result of INCR
            remaining = max(0, max_requests - current)
            is_allowed = current <= max_requests

            return is_allowed, remaining
        except redis.RedisError as e:
            logger.warning("Rate limit check failed for %s: %s", action, e)
            RedisClient.mark_unavailable(e)
            return True, max_requests

    @staticmethod
    def get_remaining_time(identifier: str, action: str) -> int:
        """Get seconds until rate limit resets"""
        key = CacheKeys.rate_limit(identifier, action)
        try:
            return max(0, RedisOps.ttl(key))
        except redis.RedisError:
            return 0

    @staticmethod
    def acquire_cooldown(mobile_number: str, purpose: str, cooldown_seconds: int) -> tuple[bool, int]:
        """
        Start a resend cooldown for (phone, purpose).

        Returns:
            (is_allowed, retry_after_seconds)
        """
        key = CacheKeys.resend_cooldown(mobile_number, purpose)
        try:
            if RedisOps.set_if_absent(key, "1", cooldown_seconds):
                return True, 0
            return False, max(1, RedisOps.ttl(key))
        except redis.RedisError as e:
            logger.warning("Resend cooldown check failed: %s", e)
            RedisClient.mark_unavailable(e)
            return True, 0

    @staticmethod
    def release_cooldown(mobile_number: str, purpose: str) -> None:
        """Drop the cooldown so a failed resend can be retried at once"""
        try:
            RedisOps.delete(CacheKeys.resend_cooldown(mobile_number, purpose))
        except redis.RedisError as e:
            logger.warning("Failed to release resend cooldown: %s", e)
            RedisClient.mark_unavailable(e)
