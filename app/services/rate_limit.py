"""Per-feature request limits for paid AI actions: fixed-window counters in Redis."""

import time

from app.core.config import get_settings
from app.core.exceptions import RateLimitedError
from app.core.logging import get_logger

log = get_logger(__name__)

KEY_PREFIX = "ratelimit"

# requests per window
LIMITS = {
    "chat": 30,
    "workout": 10,
    "group_workout": 5,
    "program": 5,
    "form_check": 10,
    "suggest_goals": 10,
    "swap_exercise": 20,
    "analyze_progress": 10,
    "autofill_workout": 10,
}


def limit_for(action: str) -> int:
    return LIMITS.get(action, get_settings().rate_limit_default)


def _key(user_id: str, action: str, window: int) -> str:
    bucket = int(time.time()) // window
    return f"{KEY_PREFIX}:{action}:{user_id}:{bucket}"


async def incr_requests(redis, user_id: str, action: str) -> int:
    """Count this request in the current window; set TTL on first hit. Redis errors fail open (0)."""
    window = get_settings().rate_limit_window_seconds
    key = _key(user_id, action, window)
    try:
        n = await redis.incr(key)
        if n == 1:
            await redis.expire(key, window)
        return n
    except Exception as e:
        log.warning("rate_limit_unavailable", action=action, reason=str(e))
        return 0


async def check_rate_limit(redis, user_id: str, action: str) -> None:
    n = await incr_requests(redis, user_id, action)
    cap = limit_for(action)
    if n > cap:
        log.info("rate_limited", user_id=user_id, action=action, count=n, cap=cap)
        raise RateLimitedError(retry_after_seconds=get_settings().rate_limit_window_seconds)
