"""
Rate Limiting Middleware

Fixed-window counters in Redis, one bucket for AI feedback endpoints and
one for the rest of the API. Fails open when Redis is unavailable.
"""
import time
import logging
from typing import Optional, Tuple
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from core.config import settings
from core.cache import get_redis_client
from core.exceptions import ErrorCode

logger = logging.getLogger(__name__)

AI_PATH_PREFIXES = ("/v1/feedback/current", "/v1/sessions/placeholder")
EXEMPT_PATHS = ("/health", "/docs", "/openapi.json", "/redoc")
EXEMPT_PREFIXES = ("/v1/billing/webhooks", "/v1/cron")


def client_identifier(request: Request) -> str:
    """user:{id} when a valid bearer token is present, otherwise ip:{address}."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        from core.security import get_user_id_from_token
        user_id = get_user_id_from_token(auth_header.split(" ", 1)[1])
        if user_id:
            return f"user:{user_id}"

    forwarded = (
        request.headers.get("x-vercel-forwarded-for")
        or request.headers.get("x-forwarded-for")
        or request.headers.get("x-real-ip")
    )
    ip = forwarded.split(",")[0].strip() if forwarded else "127.0.0.1"
    return f"ip:{ip}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-identifier rate limiting with separate AI and general buckets."""

    def __init__(self, app, ai_limit: Optional[int] = None, general_limit: Optional[int] = None, window: int = 60):
        super().__init__(app)
        self.ai_limit = ai_limit or settings.RATE_LIMIT_AI_PER_MINUTE
        self.general_limit = general_limit or settings.RATE_LIMIT_GENERAL_PER_MINUTE
        self.window = window

    async def dispatch(self, request: Request, call_next):
        if not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        path = request.url.path
        if path in EXEMPT_PATHS or path.startswith(EXEMPT_PREFIXES) or not path.startswith("/v1/"):
            return await call_next(request)

        bucket, limit = self._bucket_for(path)
        identifier = client_identifier(request)

        allowed, remaining, reset_time = self._check_rate_limit(
            key=f"rate_limit:{bucket}:{identifier}",
            limit=limit,
            window=self.window,
        )

        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(reset_time),
        }

        if not allowed:
            logger.info(
                "Rate limit exceeded",
                extra={"extra_fields": {"bucket": bucket, "identifier": identifier}},
            )
            headers["Retry-After"] = str(max(0, reset_time - int(time.time())))
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": "Rate limit exceeded",
                    "error_code": ErrorCode.RATE_LIMIT_EXCEEDED.value,
                },
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response

    def _bucket_for(self, path: str) -> Tuple[str, int]:
        if path.startswith(AI_PATH_PREFIXES):
            return "ai", self.ai_limit
        return "general", self.general_limit

    def _check_rate_limit(self, key: str, limit: int, window: int) -> Tuple[bool, int, int]:
        """
        Returns:
            (allowed, remaining, reset_time)
        """
        redis_client = get_redis_client()

        if not redis_client:
            logger.warning("Redis unavailable, skipping rate limit check")
            return True, limit, int(time.time()) + window

        try:
            current = redis_client.get(key)

            if current is None:
                redis_client.setex(key, window, 1)
                return True, limit - 1, int(time.time()) + window

            if int(current) >= limit:
                ttl = redis_client.ttl(key)
                return False, 0, int(time.time()) + (ttl if ttl > 0 else window)

            new_count = redis_client.incr(key)
            if new_count == 1:
                redis_client.expire(key, window)

            ttl = redis_client.ttl(key)
            return True, max(0, limit - new_count), int(time.time()) + (ttl if ttl > 0 else window)

        except Exception as e:
            logger.error(f"Rate limit check error: {e}")
            return True, limit, int(time.time()) + window
