from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(self), microphone=()",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response


def client_ip(request: Request) -> str:
    """Resolve the caller IP: X-Forwarded-For, X-Real-IP, socket peer, "unknown"."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and forwarded.strip():
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RateLimiter:
    """Fixed-window, in-memory request counter keyed by client.

    State lives in one process; multi-worker deployments need a shared store.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = int(max_requests)
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (count, reset_at)
        self._buckets: Dict[str, Tuple[int, float]] = {}

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._buckets.get(key)
            if entry is None or now > entry[1]:
                self._buckets[key] = (1, now + self.window_seconds)
                self._prune(now)
                return True
            count, reset_at = entry
            if count >= self.max_requests:
                return False
            self._buckets[key] = (count + 1, reset_at)
            return True

    def _prune(self, now: float) -> None:
        if len(self._buckets) < 1024:
            return
        expired = [k for k, (_, reset_at) in self._buckets.items() if now > reset_at]
        for k in expired:
            del self._buckets[k]
