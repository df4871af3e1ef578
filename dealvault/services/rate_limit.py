from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from dealvault.core.config import get_settings

logger = structlog.get_logger(__name__)

ISSUE_RATE_LIMIT_WINDOW_SECONDS = 60
ISSUE_RATE_LIMIT_KEY_PREFIX = "dealvault:ratelimit:issue"

_redis_client: Redis | None = None


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    count: int
    limit: int
    retry_after_seconds: int


def get_redis_client() -> Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(get_settings().redis_url)
    return _redis_client


async def close_redis_client() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


def _window_key(subject: str, *, now_utc: datetime) -> tuple[str, int]:
    epoch = int(now_utc.timestamp())
    window_start = epoch - (epoch % ISSUE_RATE_LIMIT_WINDOW_SECONDS)
    retry_after = window_start + ISSUE_RATE_LIMIT_WINDOW_SECONDS - epoch
    return f"{ISSUE_RATE_LIMIT_KEY_PREFIX}:{subject}:{window_start}", retry_after


async def check_issue_rate_limit(
    subject: str,
    *,
    redis_client: Redis | None = None,
    now_utc: datetime | None = None,
) -> RateLimitDecision:
    limit = get_settings().issue_rate_limit_per_minute
    key, retry_after = _window_key(subject, now_utc=now_utc or datetime.now(timezone.utc))
    client = redis_client or get_redis_client()
    try:
        count = int(await client.incr(key))
        if count == 1:
            await client.expire(key, ISSUE_RATE_LIMIT_WINDOW_SECONDS)
    except RedisError:
        # Fail open: the limiter protects capacity, not voucher correctness.
        logger.warning("issue_rate_limit_unavailable", subject=subject)
        return RateLimitDecision(allowed=True, count=0, limit=limit, retry_after_seconds=0)

    allowed = count <= limit
    if not allowed:
        logger.info("issue_rate_limited", subject=subject, count=count, limit=limit)
    return RateLimitDecision(
        allowed=allowed,
        count=count,
        limit=limit,
        retry_after_seconds=retry_after if not allowed else 0,
    )
