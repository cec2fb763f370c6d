# Cross-process mutual exclusion for multi-table writes (payment reconciliation, admin decisions).
# Fails open: the store's unique constraints remain the last line of defence when Redis is absent.
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator
from uuid import uuid4

from fastapi import HTTPException, status

from .redis_client import get_redis

logger = logging.getLogger("boardinghouse.locks")

_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


def reconciliation_lock_key(payment_intent_id: str) -> str:
    return f"lock:reconcile:intent:{payment_intent_id}"


def room_lock_key(room_id: int) -> str:
    return f"lock:room:{room_id}"


@contextmanager
def redis_try_lock(key: str, ttl_ms: int = 10000) -> Iterator[bool]:
    """
    SET NX PX lock around a critical section.

    Yields True when the lock is held (or Redis is disabled/unreachable) and
    False when another process holds it. Release is token-checked so an
    expired lock re-acquired elsewhere is never deleted by us.
    """
    r = get_redis()
    if r is None:
        yield True
        return

    token = uuid4().hex
    try:
        acquired = bool(r.set(key, token, nx=True, px=ttl_ms))
    except Exception as exc:
        logger.warning("lock acquire failed, proceeding unlocked (key=%s): %s", key, exc)
        yield True
        return

    try:
        yield acquired
    finally:
        if acquired:
            try:
                r.eval(_RELEASE_SCRIPT, 1, key, token)
            except Exception as exc:
                # TTL will expire it
                logger.debug("lock release failed (key=%s): %s", key, exc)


@contextmanager
def hold_or_busy(key: str, ttl_ms: int = 10000) -> Iterator[None]:
    """redis_try_lock that turns contention into the API's standard 429 busy response."""
    with redis_try_lock(key, ttl_ms=ttl_ms) as locked:
        if not locked:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={"error": "busy", "retry_after": 1},
            )
        yield
