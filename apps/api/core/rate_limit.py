"""
Rate Limiting Middleware

Fixed-window counters in Redis, keyed by user (JWT subject) or client IP.
The coach chat endpoint has its own, tighter limit since every request
costs an LLM call.
"""
import time
import logging
from typing import Tuple
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from core.config import settings
from core.redis_client import get_redis_client
from core.security import decode_access_token

logger = logging.getLogger(__name__)

EXEMPT_PATHS = ("/health", "/ping", "/docs", "/openapi.json", "/redoc")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-user, per-endpoint request limiting."""

    def __init__(self, app, default_limit: int = 60, window: int = 60):
        super().__init__(app)
        self.default_limit = default_limit
        self.window = window  # seconds

        self.endpoint_limits = {
            "/api/coach/chat": settings.RATE_LIMIT_COACH_CHAT_PER_MINUTE,
        }

    async def dispatch(self, request: Request, call_next):
        if not settings.RATE_LIMIT_ENABLED or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        identity = self._get_identity(request)
        limit = self._get_endpoint_limit(request.url.path)

        allowed, remaining, reset_time = self._check_rate_limit(
            identity=identity,
            endpoint=request.url.path,
            limit=limit,
        )

        if not allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": "Rate limit exceeded",
                    "limit": limit,
                    "window": self.window,
                    "reset_at": reset_time,
                },
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(reset_time),
                    "Retry-After": str(max(0, int(reset_time - time.time()))),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset_time)
        return response

    def _get_identity(self, request: Request) -> str:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            payload = decode_access_token(auth_header.split(" ", 1)[1])
            if payload and payload.get("sub"):
                return f"user:{payload['sub']}"

        # Behind a proxy the first forwarded address is the client
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return f"ip:{forwarded_for.split(',')[0].strip()}"
        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _get_endpoint_limit(self, path: str) -> int:
        for endpoint, limit in self.endpoint_limits.items():
            if path.startswith(endpoint):
                return limit
        return self.default_limit

    def _check_rate_limit(self, identity: str, endpoint: str, limit: int) -> Tuple[bool, int, int]:
        """
        Returns:
            (allowed, remaining, reset_time)
        """
        redis_client = get_redis_client()
        if not redis_client:
            return True, limit, int(time.time()) + self.window

        key = f"rate_limit:{identity}:{endpoint}"

        try:
            count = redis_client.incr(key)
            if count == 1:
                redis_client.expire(key, self.window)
            ttl = redis_client.ttl(key)
            reset_time = int(time.time()) + (ttl if ttl > 0 else self.window)
            if count > limit:
                return False, 0, reset_time
            return True, max(0, limit - count), reset_time
        except Exception as e:
            # Fail open: a Redis hiccup must not take the API down
            logger.error(f"Rate limit check error: {e}")
            return True, limit, int(time.time()) + self.window
