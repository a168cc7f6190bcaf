"""
HTTP middleware: per-client rate limiting and request logging.

Both layers turn an unhandled exception into the generic 500 body themselves,
so errors still get rate-limit headers and a request log line.
"""
import logging
import math
import threading
import time
from typing import Callable, Dict, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from errors import GENERIC_ERROR_MESSAGE

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."


def server_error_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": GENERIC_ERROR_MESSAGE},
    )


async def _call_next_or_500(request: Request, call_next: Callable) -> Response:
    try:
        return await call_next(request)
    except Exception as e:
        logger.error(
            f"Unhandled exception on {request.url.path}: {e}",
            exc_info=True,
            extra={"path": request.url.path},
        )
        return server_error_response()


class RateLimiter:
    """Fixed-window request counter keyed by client.

    Expired windows are swept at most once per window, so keys for clients
    that never come back do not pile up.
    """

    def __init__(self, max_requests: int = 100, window_seconds: int = 900):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clients: Dict[str, Tuple[int, float]] = {}
        self._last_sweep = None
        self._lock = threading.Lock()

    def _sweep(self, now: float):
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep < self.window_seconds:
            return
        self._clients = {
            k: v for k, v in self._clients.items() if now - v[1] < self.window_seconds
        }
        self._last_sweep = now

    def hit(self, key: str, now: float = None) -> Tuple[bool, int, float]:
        """Count one request for `key`. Returns (allowed, remaining, reset_at)."""
        if now is None:
            now = time.time()
        with self._lock:
            self._sweep(now)
            count, window_start = self._clients.get(key, (0, now))
            if now - window_start >= self.window_seconds:
                count, window_start = 0, now
            reset_at = window_start + self.window_seconds
            if count >= self.max_requests:
                return False, 0, reset_at
            count += 1
            self._clients[key] = (count, window_start)
            return True, self.max_requests - count, reset_at

    def reset(self):
        with self._lock:
            self._clients.clear()
            self._last_sweep = None

    def client_count(self) -> int:
        return len(self._clients)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: RateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        client = request.client.host if request.client else "unknown"
        now = time.time()
        allowed, remaining, reset_at = self.limiter.hit(client, now)
        headers = {
            "X-RateLimit-Limit": str(self.limiter.max_requests),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(int(reset_at)),
        }

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for {client} on {request.url.path}",
                extra={"client": client, "path": request.url.path},
            )
            headers["Retry-After"] = str(max(1, math.ceil(reset_at - now)))
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"success": False, "message": RATE_LIMIT_MESSAGE},
                headers=headers,
            )

        response = await _call_next_or_500(request, call_next)
        response.headers.update(headers)
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        method = request.method
        path = request.url.path

        response = await _call_next_or_500(request, call_next)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"{method} {path} -> {response.status_code} ({duration_ms:.2f}ms)",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}"
        return response
