# common/circuit_breaker.py
import logging
from datetime import datetime, timedelta
from typing import Optional

from .timeutils import utcnow

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    Simple in-memory circuit breaker for outbound HTTP calls.

    States:
    - closed: all requests pass, count failures
    - open: requests are blocked immediately
    - half_open: allow a trial request after reset timeout
    """

    def __init__(self, name: str, max_failures: int = 3, reset_timeout_seconds: int = 30):
        self.name = name
        self.max_failures = max_failures
        self.reset_timeout = timedelta(seconds=reset_timeout_seconds)
        self.failure_count = 0
        self.state = "closed"  # "closed" | "open" | "half_open"
        self.last_failure_time: Optional[datetime] = None

    def allow_request(self) -> bool:
        """
        Return True if a request is allowed to go through, False if the circuit is open.
        """
        if self.state == "open":
            if self.last_failure_time is None:
                return False
            if utcnow() - self.last_failure_time >= self.reset_timeout:
                self.state = "half_open"
                logger.info("Circuit %s half-open, allowing a trial request", self.name)
                return True
            return False

        return True

    def record_success(self) -> None:
        """
        Reset the circuit on a successful call.
        """
        if self.state != "closed":
            logger.info("Circuit %s closed again", self.name)
        self.failure_count = 0
        self.state = "closed"
        self.last_failure_time = None

    def record_failure(self) -> None:
        """
        Increment the failure count and potentially open the circuit.
        """
        self.failure_count += 1
        self.last_failure_time = utcnow()
        if self.state == "half_open" or self.failure_count >= self.max_failures:
            if self.state != "open":
                logger.warning(
                    "Circuit %s opened after %d failures", self.name, self.failure_count
                )
            self.state = "open"

    def reset(self) -> None:
        self.record_success()
