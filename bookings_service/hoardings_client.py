# bookings_service/hoardings_client.py
"""
HTTP client for the hoardings service.

Every call carries a short-lived service-account token and goes through a
circuit breaker; transport errors and unexpected responses surface as
502 / 503 errors to the caller.
"""
import logging
from typing import Optional

import httpx

from common.auth import make_service_account_token
from common.circuit_breaker import CircuitBreaker
from common.errors import BadGateway, NotFound, ServiceUnavailable
from common.settings import HOARDINGS_SERVICE_URL

from .schemas import HoardingSnapshot

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_NAME = "bookings_service"

hoardings_circuit_breaker = CircuitBreaker(
    name="hoardings_service",
    max_failures=3,
    reset_timeout_seconds=30,
)


def _headers() -> dict:
    return {"Authorization": f"Bearer {make_service_account_token(SERVICE_ACCOUNT_NAME)}"}


def _check_circuit() -> None:
    if not hoardings_circuit_breaker.allow_request():
        raise ServiceUnavailable("Hoardings service temporarily unavailable (circuit open)")


def fetch_hoarding(hoarding_id: int) -> Optional[HoardingSnapshot]:
    """
    Look up a hoarding by id.

    Returns
    -------
    Optional[HoardingSnapshot]
        The hoarding, or None if the hoardings service answers 404.
    """
    _check_circuit()
    try:
        resp = httpx.get(
            f"{HOARDINGS_SERVICE_URL}/api/v1/hoardings/{hoarding_id}",
            headers=_headers(),
            timeout=5.0,
        )
    except httpx.RequestError as exc:
        hoardings_circuit_breaker.record_failure()
        logger.warning("Hoarding lookup for %s failed: %s", hoarding_id, exc)
        raise BadGateway("Failed to contact hoardings service")

    if resp.status_code == 404:
        hoardings_circuit_breaker.record_success()
        return None

    if resp.status_code != 200:
        hoardings_circuit_breaker.record_failure()
        raise BadGateway("Hoardings service returned an error")

    hoardings_circuit_breaker.record_success()
    return HoardingSnapshot.model_validate(resp.json())


def update_hoarding_status(hoarding_id: int, new_status: str) -> None:
    """Set the availability flag of a hoarding (available / booked / maintenance)."""
    _check_circuit()
    try:
        resp = httpx.put(
            f"{HOARDINGS_SERVICE_URL}/api/v1/hoardings/{hoarding_id}/status",
            json={"status": new_status},
            headers=_headers(),
            timeout=5.0,
        )
    except httpx.RequestError as exc:
        hoardings_circuit_breaker.record_failure()
        logger.warning("Hoarding status update for %s failed: %s", hoarding_id, exc)
        raise BadGateway("Failed to contact hoardings service")

    if resp.status_code == 404:
        hoardings_circuit_breaker.record_success()
        raise NotFound("Hoarding not found")

    if resp.status_code != 200:
        hoardings_circuit_breaker.record_failure()
        raise BadGateway("Hoardings service refused the status update")

    hoardings_circuit_breaker.record_success()
    logger.info("Hoarding %s flagged %s", hoarding_id, new_status)
