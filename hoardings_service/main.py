from datetime import datetime
from typing import Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Query, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from common.auth import (
    ROLE_ADMIN,
    ROLE_SERVICE_ACCOUNT,
    make_service_account_token,
    require_roles,
)
from common.cache import (
    HOARDINGS_ALL_KEY,
    get_cached_json,
    hoarding_key,
    invalidate_hoarding,
    set_cached_json,
)
from common.circuit_breaker import CircuitBreaker
from common.errors import (
    BadGateway,
    InvalidRequest,
    NotFound,
    ServiceUnavailable,
    register_exception_handlers,
)
from common.logging_config import configure_logging
from common.rate_limiter import api_rate_limiter
from common.settings import BOOKINGS_SERVICE_URL, CORS_ORIGINS
from common.timeutils import to_naive_utc

from . import models, schemas
from .database import Base, engine, get_db

SERVICE_NAME = "hoardings"

logger = configure_logging(SERVICE_NAME)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Hoardings Service", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
register_exception_handlers(app, SERVICE_NAME)

router_v1 = APIRouter(prefix="/api/v1", dependencies=[Depends(api_rate_limiter)])

bookings_circuit_breaker = CircuitBreaker(
    name="bookings_service",
    max_failures=3,
    reset_timeout_seconds=30,
)


@app.get("/")
def root():
    """
    Health-check endpoint for the Hoardings service.

    Returns
    -------
    dict
        A small JSON payload indicating that the service is running.
    """
    return {"service": SERVICE_NAME, "status": "running"}


admin_only = require_roles(ROLE_ADMIN)
admin_or_service = require_roles(ROLE_ADMIN, ROLE_SERVICE_ACCOUNT)


def get_hoarding_or_404(db: Session, hoarding_id: int) -> models.Hoarding:
    hoarding = db.query(models.Hoarding).filter(models.Hoarding.id == hoarding_id).first()
    if not hoarding:
        raise NotFound("Hoarding not found")
    return hoarding


# ---------- List / search hoardings (public) ----------


@router_v1.get("/hoardings", response_model=List[schemas.HoardingRead])
def list_hoardings(
    status_filter: Optional[models.HoardingStatus] = Query(default=None, alias="status"),
    location: Optional[str] = None,
    max_price: Optional[float] = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    """
    Retrieve hoardings with optional filters.

    Behavior
    --------
    - Public: no token required.
    - Supports filtering by availability status, location substring and
      maximum daily price.
    - The unfiltered listing is cached for 60 seconds.

    Returns
    -------
    List[HoardingRead]
        Hoardings matching the filters, newest first.
    """
    cacheable = status_filter is None and not location and max_price is None

    if cacheable:
        cached = get_cached_json(HOARDINGS_ALL_KEY)
        if cached is not None:
            return cached

    query = db.query(models.Hoarding)

    if status_filter is not None:
        query = query.filter(models.Hoarding.status == status_filter)

    if location:
        query = query.filter(models.Hoarding.location.ilike(f"%{location}%"))

    if max_price is not None:
        query = query.filter(models.Hoarding.price <= max_price)

    hoardings = query.order_by(models.Hoarding.created_at.desc(), models.Hoarding.id.desc()).all()

    if cacheable:
        data = [schemas.HoardingRead.model_validate(h).model_dump(mode="json") for h in hoardings]
        set_cached_json(HOARDINGS_ALL_KEY, data, ttl_seconds=60)
        return data

    return hoardings


@router_v1.get("/hoardings/{hoarding_id}", response_model=schemas.HoardingRead)
def get_hoarding(hoarding_id: int, db: Session = Depends(get_db)):
    """
    Retrieve a single hoarding by its ID.

    Raises
    ------
    HTTPException
        404 if the hoarding does not exist.
    """
    cache_key = hoarding_key(hoarding_id)
    cached = get_cached_json(cache_key)
    if cached is not None:
        return cached

    hoarding = get_hoarding_or_404(db, hoarding_id)
    data = schemas.HoardingRead.model_validate(hoarding).model_dump(mode="json")
    set_cached_json(cache_key, data, ttl_seconds=300)
    return hoarding


# ---------- Create / update / delete (admin) ----------


@router_v1.post("/hoardings", response_model=schemas.HoardingRead, status_code=status.HTTP_201_CREATED)
def create_hoarding(
    hoarding_in: schemas.HoardingCreate,
    db: Session = Depends(get_db),
    claims: Dict = Depends(admin_only),
):
    """
    Create a new hoarding.

    Access
    ------
    - Admin only. The creating admin is recorded as ``created_by``.
    """
    hoarding = models.Hoarding(
        location=hoarding_in.location,
        width=hoarding_in.size.width,
        height=hoarding_in.size.height,
        price=hoarding_in.price,
        status=hoarding_in.status,
        image=hoarding_in.image,
        description=hoarding_in.description,
        created_by=claims["user_id"],
    )
    db.add(hoarding)
    db.commit()
    db.refresh(hoarding)
    invalidate_hoarding(hoarding.id)
    logger.info("Hoarding %s created by user %s", hoarding.id, claims["user_id"])
    return hoarding


@router_v1.put("/hoardings/{hoarding_id}", response_model=schemas.HoardingRead)
def update_hoarding(
    hoarding_id: int,
    update_data: schemas.HoardingUpdate,
    db: Session = Depends(get_db),
    _: Dict = Depends(admin_only),
):
    """
    Update an existing hoarding.

    Only the provided fields are changed.
    """
    hoarding = get_hoarding_or_404(db, hoarding_id)

    if update_data.location is not None:
        hoarding.location = update_data.location
    if update_data.size is not None:
        hoarding.width = update_data.size.width
        hoarding.height = update_data.size.height
    if update_data.price is not None:
        hoarding.price = update_data.price
    if update_data.status is not None:
        hoarding.status = update_data.status
    if update_data.image is not None:
        hoarding.image = update_data.image
    if update_data.description is not None:
        hoarding.description = update_data.description

    db.add(hoarding)
    db.commit()
    db.refresh(hoarding)
    invalidate_hoarding(hoarding.id)
    return hoarding


@router_v1.put("/hoardings/{hoarding_id}/status", response_model=schemas.HoardingRead)
def set_hoarding_status(
    hoarding_id: int,
    body: schemas.HoardingStatusUpdate,
    db: Session = Depends(get_db),
    claims: Dict = Depends(admin_or_service),
):
    """
    Set the availability flag of a hoarding.

    Access
    ------
    - Admin, or the bookings service (service account) when a booking is
      approved or a hoarding is released.
    """
    hoarding = get_hoarding_or_404(db, hoarding_id)
    previous = hoarding.status
    hoarding.status = body.status
    db.add(hoarding)
    db.commit()
    db.refresh(hoarding)
    invalidate_hoarding(hoarding.id)
    logger.info(
        "Hoarding %s status %s -> %s (by %s)",
        hoarding.id, previous.value, hoarding.status.value, claims["sub"],
    )
    return hoarding


@router_v1.delete("/hoardings/{hoarding_id}")
def delete_hoarding(
    hoarding_id: int,
    db: Session = Depends(get_db),
    _: Dict = Depends(admin_only),
):
    """
    Delete a hoarding.

    Existing bookings that reference it are left in place.
    """
    hoarding = get_hoarding_or_404(db, hoarding_id)
    db.delete(hoarding)
    db.commit()
    invalidate_hoarding(hoarding_id)
    logger.info("Hoarding %s deleted", hoarding_id)
    return {"message": "Hoarding removed"}


# ---------- Availability for a date range ----------


@router_v1.get("/hoardings/{hoarding_id}/availability", response_model=schemas.HoardingAvailability)
def hoarding_availability(
    hoarding_id: int,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
):
    """
    Report whether a hoarding can be booked, optionally for a date range.

    Behavior
    --------
    - Missing hoarding -> HTTP 404.
    - In maintenance -> status = "maintenance".
    - No range given -> the stored availability flag.
    - Range given -> asks the Bookings service whether a pending or
      approved booking overlaps the range:
        * "booked" if one does,
        * "available" otherwise.
    """
    hoarding = get_hoarding_or_404(db, hoarding_id)

    if hoarding.status == models.HoardingStatus.MAINTENANCE:
        return {"hoarding_id": hoarding.id, "status": hoarding.status}

    if start_date is None or end_date is None:
        return {"hoarding_id": hoarding.id, "status": hoarding.status}

    start_date = to_naive_utc(start_date)
    end_date = to_naive_utc(end_date)
    if end_date <= start_date:
        raise InvalidRequest("End date must be after start date")

    if not bookings_circuit_breaker.allow_request():
        raise ServiceUnavailable("Bookings service temporarily unavailable (circuit open)")

    headers = {"Authorization": f"Bearer {make_service_account_token('hoardings_service')}"}

    try:
        resp = httpx.get(
            f"{BOOKINGS_SERVICE_URL}/api/v1/bookings/availability",
            params={
                "hoarding_id": hoarding.id,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
            },
            headers=headers,
            timeout=5.0,
        )
    except httpx.RequestError as exc:
        bookings_circuit_breaker.record_failure()
        logger.warning("Bookings availability call failed: %s", exc)
        raise BadGateway("Failed to contact bookings service for availability")

    if resp.status_code != 200:
        bookings_circuit_breaker.record_failure()
        raise BadGateway("Bookings service returned an error when checking availability")

    bookings_circuit_breaker.record_success()

    available = resp.json().get("available")
    return {
        "hoarding_id": hoarding.id,
        "status": models.HoardingStatus.AVAILABLE if available else models.HoardingStatus.BOOKED,
        "start_date": start_date,
        "end_date": end_date,
    }


app.include_router(router_v1)
