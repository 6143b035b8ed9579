"""
Rate limiting middleware for the chat API.

Sliding-window counter per client address, applied to chat message
ingestion only.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List, Sequence

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiter."""

    def __init__(
        self,
        app,
        requests_per_minute: int = 20,
        paths: Sequence[str] = ("/api/v1/chat/message",),
    ):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.window_seconds = 60
        self.paths = tuple(paths)
        self._requests: Dict[str, List[float]] = defaultdict(list)

    async def dispatch(self, request: Request, call_next):
        if request.method != "POST" or request.url.path not in self.paths:
            return await call_next(request)

        client_id = self._get_client_id(request)
        now = time.time()

        # Clean old entries
        window_start = now - self.window_seconds
        self._requests[client_id] = [
            t for t in self._requests[client_id] if t > window_start
        ]

        if len(self._requests[client_id]) >= self.requests_per_minute:
            logger.warning(f"Rate limit exceeded for {client_id}")
            retry_after = int(self._requests[client_id][0] + self.window_seconds - now) + 1
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": {
                    "code": "rate_limited",
                    "message": "Too many messages. Please wait a moment and try again.",
                }},
                headers={"Retry-After": str(max(1, retry_after))},
            )

        self._requests[client_id].append(now)
        response = await call_next(request)

        remaining = self.requests_per_minute - len(self._requests[client_id])
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))

        return response

    def _get_client_id(self, request: Request) -> str:
        """Identify client by forwarded address or socket peer."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"
        return f"ip:{request.client.host}" if request.client else "ip:unknown"
