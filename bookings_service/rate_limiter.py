# bookings_service/rate_limiter.py
from typing import Any, Dict

from fastapi import Depends, HTTPException, status

from common.auth import get_current_user_claims
from common.rate_limiter import SlidingWindowLimiter
from common.settings import is_testing

WINDOW_SECONDS = 60
MAX_BOOKINGS_PER_WINDOW = 20

booking_limiter = SlidingWindowLimiter(
    max_requests=MAX_BOOKINGS_PER_WINDOW,
    window_seconds=WINDOW_SECONDS,
)


def booking_rate_limiter(claims: Dict[str, Any] = Depends(get_current_user_claims)):
    """
    Rate limit booking write operations per authenticated user.
    """
    if is_testing():
        return
    if not booking_limiter.hit(f"user:{claims['user_id']}"):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many booking operations in a short time",
        )
