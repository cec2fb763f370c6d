# Shared Redis connection used for cross-process locks and rate limiting.
# Opt-in via REDIS_ENABLED; every consumer must cope with get_redis() returning None.
import logging
import os
from typing import Optional

logger = logging.getLogger("boardinghouse.redis")

_TRUTHY = {"1", "true", "t", "yes", "y", "on"}


def is_redis_enabled() -> bool:
    return os.getenv("REDIS_ENABLED", "false").strip().lower() in _TRUTHY


class _RedisHandle:
    """Lazily connects once per process. A failed connect is remembered so callers stay fail-open."""

    def __init__(self) -> None:
        self.client = None
        self.attempted = False

    def get(self):
        if not is_redis_enabled():
            return None
        if self.client is not None or self.attempted:
            return self.client
        self.attempted = True

        url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        try:
            import redis

            client = redis.Redis.from_url(
                url,
                socket_timeout=0.25,
                socket_connect_timeout=0.25,
                retry_on_timeout=False,
            )
            client.ping()
        except Exception as exc:
            logger.warning("Redis unavailable at %s, continuing without it: %s", url, exc)
            return None
        logger.info("Connected to Redis at %s", url)
        self.client = client
        return client

    def reset(self) -> None:
        self.client = None
        self.attempted = False


_handle = _RedisHandle()


def get_redis() -> Optional[object]:
    return _handle.get()


def reset_redis() -> None:
    """Forget the cached connection (tests toggle REDIS_ENABLED between cases)."""
    _handle.reset()
