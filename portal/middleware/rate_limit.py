"""
Rate Limiting

- RateLimitMiddleware: per-tenant token bucket in Redis
- SecretActionLimiter: fixed hourly window per (tenant, user, action)
  for secret create/rotate/reveal

Both fail open: if Redis is disabled, unreachable or errors mid-request,
the request is allowed.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from typing import Optional, Tuple
from functools import lru_cache
import redis
import time
import logging

from portal.config import get_settings
from portal.core.exceptions import SecretError

logger = logging.getLogger(__name__)
settings = get_settings()


@lru_cache()
def get_redis_client() -> Optional[redis.Redis]:
    """Shared Redis client, or None when rate limiting is off or Redis is down."""
    if not settings.RATE_LIMIT_ENABLED:
        return None
    try:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5
        )
        client.ping()
        logger.info("Redis connection established for rate limiting")
        return client
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.error(f"Redis connection failed: {e}")
        return None


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Token bucket rate limiter per tenant."""

    def __init__(self, app, redis_client: Optional[redis.Redis] = None):
        super().__init__(app)
        self.redis_client = redis_client if redis_client is not None else get_redis_client()
        self.excluded_paths = [
            "/docs",
            "/redoc",
            "/openapi.json",
            "/health",
        ]

    async def dispatch(self, request: Request, call_next):
        if any(request.url.path.startswith(path) for path in self.excluded_paths):
            return await call_next(request)

        if self.redis_client is None:
            return await call_next(request)

        # Set by TenantMiddleware
        tenant = getattr(request.state, "tenant", None)
        if not tenant:
            return await call_next(request)

        allowed, retry_after = self._check_rate_limit(tenant)

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for tenant {tenant.slug}",
                extra={"tenant_id": tenant.id}
            )
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Rate limit exceeded",
                    "type": "rate_limit_exceeded",
                    "retry_after": retry_after
                },
                headers={"Retry-After": str(retry_after)}
            )

        return await call_next(request)

    def _check_rate_limit(self, tenant) -> Tuple[bool, int]:
        """
        Returns (allowed, retry_after seconds).

        The bucket holds up to `burst` tokens and refills at
        rate_limit_per_minute / 60 tokens per second.
        """
        rate_limit = tenant.rate_limit_per_minute or settings.RATE_LIMIT_PER_MINUTE
        burst = tenant.rate_limit_burst or settings.RATE_LIMIT_BURST

        key = f"rate_limit:{tenant.id}"
        key_timestamp = f"{key}:timestamp"

        try:
            current_tokens = self.redis_client.get(key)
            last_update = self.redis_client.get(key_timestamp)

            now = time.time()

            if current_tokens is None:
                self.redis_client.setex(key, 60, burst - 1)
                self.redis_client.setex(key_timestamp, 60, now)
                return True, 0

            current_tokens = float(current_tokens)
            last_update = float(last_update) if last_update else now

            elapsed = now - last_update
            new_tokens = min(burst, current_tokens + elapsed * (rate_limit / 60.0))

            if new_tokens >= 1:
                self.redis_client.setex(key, 60, new_tokens - 1)
                self.redis_client.setex(key_timestamp, 60, now)
                return True, 0

            retry_after = int(((1 - new_tokens) / (rate_limit / 60.0)) + 1)
            return False, retry_after

        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            return True, 0


class SecretActionLimiter:
    """
    Fixed-window limiter for sensitive secret actions.

    Raises SecretError("RATE_LIMIT_EXCEEDED") once a (tenant, user, action)
    exceeds `limit` calls within `window_seconds`.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis],
        limit: int = settings.SECRET_ACTION_LIMIT_PER_HOUR,
        window_seconds: int = 3600,
    ):
        self.redis_client = redis_client
        self.limit = limit
        self.window_seconds = window_seconds

    def check(self, tenant_id: str, user_id: str, action: str) -> None:
        if self.redis_client is None:
            return

        key = f"secret_action:{tenant_id}:{user_id}:{action}"
        try:
            count = self.redis_client.incr(key)
            if count == 1:
                self.redis_client.expire(key, self.window_seconds)
        except redis.RedisError as e:
            logger.error(f"Redis error in secret action limiter: {e}")
            return

        if count > self.limit:
            logger.warning(
                f"Secret action rate limit exceeded: {action}",
                extra={"tenant_id": tenant_id, "user_id": user_id}
            )
            raise SecretError("RATE_LIMIT_EXCEEDED", f"Too many {action} requests, try again later")


def get_secret_limiter() -> SecretActionLimiter:
    """FastAPI dependency; tests override it with a limiter on a fake client."""
    return SecretActionLimiter(get_redis_client())
