# roomchat/core/rate_limiter.py
"""Sliding-window rate limiting backed by Redis sorted sets."""
import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: int
    key_prefix: str


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: int  # epoch milliseconds
    retry_after: Optional[int] = None


MESSAGE_RATE_LIMIT = RateLimitConfig(5, 10, "rate_limit:messages")
JOIN_ROOM_RATE_LIMIT = RateLimitConfig(10, 60, "rate_limit:join_room")
TYPING_RATE_LIMIT = RateLimitConfig(20, 10, "rate_limit:typing")
RECEIPT_RATE_LIMIT = RateLimitConfig(60, 10, "rate_limit:receipts")
LEAVE_ROOM_RATE_LIMIT = RateLimitConfig(10, 60, "rate_limit:leave_room")

GET_MESSAGES_RATE_LIMIT = RateLimitConfig(30, 60, "rate_limit:get_messages")
CREATE_ROOM_RATE_LIMIT = RateLimitConfig(5, 300, "rate_limit:create_room")
CREATE_INVITE_RATE_LIMIT = RateLimitConfig(20, 300, "rate_limit:create_invite")
API_GENERAL_RATE_LIMIT = RateLimitConfig(100, 60, "rate_limit:api_general")


def get_rest_rate_limit_config(method: str, path: str) -> Optional[RateLimitConfig]:
    """Pick the tier for an HTTP request; None means the request is not limited."""
    method = method.upper()
    path = path.rstrip("/")

    if method == "GET" and "/rooms/" in path and path.endswith("/messages"):
        return GET_MESSAGES_RATE_LIMIT
    if method == "POST" and path.endswith("/rooms"):
        return CREATE_ROOM_RATE_LIMIT
    if method == "POST" and path.endswith("/join"):
        return JOIN_ROOM_RATE_LIMIT
    if method == "POST" and "/invitations/" in path:
        return CREATE_INVITE_RATE_LIMIT
    if method not in ("GET", "HEAD", "OPTIONS"):
        return API_GENERAL_RATE_LIMIT
    return None


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def check_rate_limit(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """Count this request against the window, denying it when the window is full.

        Counts are approximate under contention: the denied marker is removed
        in a second round trip after the pipelined check.
        """
        key = f"{config.key_prefix}:{identifier}"
        now = _now_ms()
        window_ms = config.window_seconds * 1000
        reset_time = now + window_ms
        marker = f"{now}-{uuid.uuid4().hex[:12]}"

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, 0, now - window_ms)
                pipe.zcard(key)
                pipe.zadd(key, {marker: now})
                pipe.expire(key, config.window_seconds)
                results = await pipe.execute()

            current_count = int(results[1] or 0)
            allowed = current_count < config.max_requests

            if allowed:
                remaining = max(0, config.max_requests - current_count - 1)
                logger.debug(
                    f"Rate limit check passed for {key}: {current_count + 1}/{config.max_requests}"
                )
                return RateLimitResult(allowed=True, remaining=remaining, reset_time=reset_time)

            await self.redis.zrem(key, marker)

            oldest = await self.redis.zrange(key, 0, 0, withscores=True)
            if oldest:
                retry_after = math.ceil((oldest[0][1] + window_ms - now) / 1000)
            else:
                retry_after = config.window_seconds
            retry_after = max(1, retry_after)

            logger.debug(
                f"Rate limit exceeded for {key}: {current_count}/{config.max_requests}, retry after {retry_after}s"
            )
            return RateLimitResult(allowed=False, remaining=0, reset_time=reset_time, retry_after=retry_after)

        except Exception as e:
            logger.error(f"Rate limit check failed for {key}, allowing request: {e}")
            return RateLimitResult(allowed=True, remaining=config.max_requests - 1, reset_time=reset_time)

    async def get_rate_limit_status(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """Current window usage without recording a request."""
        key = f"{config.key_prefix}:{identifier}"
        now = _now_ms()
        window_ms = config.window_seconds * 1000

        try:
            await self.redis.zremrangebyscore(key, 0, now - window_ms)
            current_count = await self.redis.zcard(key)
            return RateLimitResult(
                allowed=current_count < config.max_requests,
                remaining=max(0, config.max_requests - current_count),
                reset_time=now + window_ms,
            )
        except Exception as e:
            logger.error(f"Rate limit status check failed for {key}: {e}")
            return RateLimitResult(allowed=True, remaining=config.max_requests, reset_time=now + window_ms)

    async def reset_rate_limit(self, identifier: str, key_prefix: str):
        key = f"{key_prefix}:{identifier}"
        try:
            await self.redis.delete(key)
            logger.debug(f"Rate limit reset for {key}")
        except Exception as e:
            logger.error(f"Rate limit reset failed for {key}: {e}")
