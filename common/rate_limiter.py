# common/rate_limiter.py
import threading
import time
from typing import Callable, Dict, List, Optional

from fastapi import HTTPException, Request, status

from .auth import ROLE_SERVICE_ACCOUNT, decode_token
from .settings import is_testing


class SlidingWindowLimiter:
    """
    In-memory sliding-window counter: at most ``max_requests`` hits per key
    inside any ``window_seconds`` interval.

    Keys whose hits have all left the window are swept every
    ``sweep_every`` calls so the table only holds recently seen clients.
    """

    def __init__(self, max_requests: int, window_seconds: int, sweep_every: int = 1000):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.sweep_every = sweep_every
        self._log: Dict[str, List[float]] = {}
        self._calls = 0
        self._lock = threading.Lock()

    def hit(self, key: str, now: Optional[float] = None) -> bool:
        """
        Record a request for ``key``.

        Returns False (and records nothing) if the key is over its limit.
        """
        now = time.time() if now is None else now
        window_start = now - self.window_seconds

        with self._lock:
            self._calls += 1
            if self._calls >= self.sweep_every:
                self._sweep(window_start)

            timestamps = [ts for ts in self._log.get(key, []) if ts >= window_start]
            if len(timestamps) >= self.max_requests:
                self._log[key] = timestamps
                return False
            timestamps.append(now)
            self._log[key] = timestamps
            return True

    def _sweep(self, window_start: float) -> None:
        # caller holds self._lock
        stale = [key for key, timestamps in self._log.items() if not timestamps or timestamps[-1] < window_start]
        for key in stale:
            del self._log[key]
        self._calls = 0

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._log)

    def reset(self) -> None:
        with self._lock:
            self._log.clear()
            self._calls = 0


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _is_service_account(request: Request) -> bool:
    """True if the request carries a valid service-account bearer token."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    try:
        claims = decode_token(token)
    except HTTPException:
        return False
    return claims["role"] == ROLE_SERVICE_ACCOUNT


def ip_rate_limiter(limiter: SlidingWindowLimiter, message: str, per_path: bool = False) -> Callable:
    """
    Build a dependency that rate limits by client IP (optionally IP + path).

    Calls between services (service-account tokens) are never counted, since
    they all arrive from the calling service's address. Skipped entirely
    when TESTING=1.
    """

    def dependency(request: Request):
        if is_testing() or _is_service_account(request):
            return
        key = _client_ip(request)
        if per_path:
            key = f"{key}:{request.url.path}"
        if not limiter.hit(key):
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=message,
            )

    return dependency


# General API traffic: 100 requests / 15 minutes per IP
api_limiter = SlidingWindowLimiter(max_requests=100, window_seconds=15 * 60)
api_rate_limiter = ip_rate_limiter(
    api_limiter,
    "Too many requests from this IP, please try again after 15 minutes",
)

# Login / registration: 5 requests / hour per IP and path
auth_limiter = SlidingWindowLimiter(max_requests=5, window_seconds=60 * 60)
auth_rate_limiter = ip_rate_limiter(
    auth_limiter,
    "Too many login attempts, please try again after an hour",
    per_path=True,
)
