# Fixed-window request limiter keyed by client IP.
# Guards auth endpoints and payment-intent creation (each intent is a billable processor call).
import logging
import os
from typing import Callable, Dict, Literal

from fastapi import HTTPException, Request, status

from .redis_client import get_redis

logger = logging.getLogger("boardinghouse.rate_limit")

Scope = Literal["login", "signup", "write", "payment"]

_DEFAULT_LIMITS: Dict[str, int] = {
    "login": 10,
    "signup": 5,
    "write": 30,
    "payment": 10,
}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


def window_seconds() -> int:
    return _env_int("RATE_LIMIT_WINDOW_SECONDS", 60)


def limit_for(scope: Scope) -> int:
    # RATE_LIMIT_LOGIN_PER_WINDOW, RATE_LIMIT_PAYMENT_PER_WINDOW, ...
    return _env_int(f"RATE_LIMIT_{scope.upper()}_PER_WINDOW", _DEFAULT_LIMITS[scope])


def rate_limit(scope: Scope) -> Callable[[Request], None]:
    """
    Build a dependency enforcing `limit_for(scope)` hits per `window_seconds()` per IP.

    Counters live at rl:v1:{scope}:{ip}; the TTL is set on the first hit of a window.
    Without Redis the dependency is a no-op.
    """
    window = window_seconds()
    limit = limit_for(scope)

    def _dependency(request: Request) -> None:
        r = get_redis()
        if r is None:
            return

        ip = request.client.host if request.client and request.client.host else "unknown"
        key = f"rl:v1:{scope}:{ip}"
        try:
            current = r.incr(key)
            if current == 1:
                r.expire(key, window)
            if current <= limit:
                return
            ttl = r.ttl(key)
        except Exception as exc:
            logger.warning("rate limit check skipped (scope=%s, ip=%s): %s", scope, ip, exc)
            return

        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "rate_limited",
                "scope": scope,
                "limit": limit,
                "window_seconds": window,
                "retry_after": ttl if isinstance(ttl, int) and ttl > 0 else window,
            },
        )

    return _dependency
