from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from common.auth import (
    ROLE_ADMIN,
    ROLE_SERVICE_ACCOUNT,
    get_current_user_claims,
    is_admin,
    require_roles,
)
from common.errors import Forbidden, InvalidRequest, register_exception_handlers
from common.logging_config import configure_logging
from common.rate_limiter import api_rate_limiter
from common.settings import CORS_ORIGINS
from common.timeutils import to_naive_utc

from . import admission, hoardings_client, models, schemas
from .database import Base, engine, get_db
from .rate_limiter import booking_rate_limiter

SERVICE_NAME = "bookings"

logger = configure_logging(SERVICE_NAME)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Bookings Service", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
register_exception_handlers(app, SERVICE_NAME)

router_v1 = APIRouter(prefix="/api/v1", dependencies=[Depends(api_rate_limiter)])


@app.get("/")
def root():
    """
    Health-check endpoint for the Bookings service.

    Returns
    -------
    dict
        A small JSON payload indicating that the service is running.
    """
    return {"service": SERVICE_NAME, "status": "running"}


admin_only = require_roles(ROLE_ADMIN)


def can_see_all(claims: Dict) -> bool:
    return claims["role"] in (ROLE_ADMIN, ROLE_SERVICE_ACCOUNT)


def ensure_owner_or_admin(booking: models.Booking, claims: Dict) -> None:
    if not is_admin(claims) and booking.user_id != claims["user_id"]:
        raise Forbidden("Not authorized")


def resolve_hoarding(booking: models.Booking) -> schemas.BookingDetail:
    detail = schemas.BookingDetail.model_validate(booking)
    detail.hoarding = hoardings_client.fetch_hoarding(booking.hoarding_id)
    return detail


# ---------- List bookings ----------


@router_v1.get("/bookings", response_model=List[schemas.BookingRead])
def list_bookings(
    user_id: Optional[int] = Query(default=None, ge=1),
    hoarding_id: Optional[int] = Query(default=None, ge=1),
    status_filter: Optional[models.BookingStatus] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    claims: Dict = Depends(get_current_user_claims),
):
    """
    List bookings, newest first.

    Access
    ------
    - Admins and service accounts see every booking and may filter by
      user_id, hoarding_id and status.
    - Everybody else only sees their own bookings; the user_id filter is
      ignored for them.
    """
    q = db.query(models.Booking)

    if can_see_all(claims):
        if user_id is not None:
            q = q.filter(models.Booking.user_id == user_id)
    else:
        q = q.filter(models.Booking.user_id == claims["user_id"])

    if hoarding_id is not None:
        q = q.filter(models.Booking.hoarding_id == hoarding_id)

    if status_filter is not None:
        q = q.filter(models.Booking.status == status_filter)

    return q.order_by(models.Booking.created_at.desc(), models.Booking.id.desc()).all()


@router_v1.get("/bookings/my-bookings", response_model=List[schemas.BookingRead])
def list_my_bookings(
    db: Session = Depends(get_db),
    claims: Dict = Depends(get_current_user_claims),
):
    """
    List bookings that belong to the authenticated user, newest first.
    """
    return (
        db.query(models.Booking)
        .filter(models.Booking.user_id == claims["user_id"])
        .order_by(models.Booking.created_at.desc(), models.Booking.id.desc())
        .all()
    )


# ---------- Availability for a date range ----------


@router_v1.get("/bookings/availability", response_model=schemas.Availability)
def check_availability(
    hoarding_id: int = Query(..., ge=1),
    start_date: datetime = Query(...),
    end_date: datetime = Query(...),
    db: Session = Depends(get_db),
    _: Dict = Depends(get_current_user_claims),
):
    """
    Check whether a hoarding is free during a date range.

    Only pending and approved bookings count; the hoarding's stored flag is
    not consulted.

    Returns
    -------
    Availability
        ``available`` is False if any blocking booking overlaps the range.
    """
    start_date = to_naive_utc(start_date)
    end_date = to_naive_utc(end_date)
    if end_date <= start_date:
        raise InvalidRequest("End date must be after start date")

    busy = admission.has_overlap(db, hoarding_id, start_date, end_date)
    return {
        "hoarding_id": hoarding_id,
        "available": not busy,
        "start_date": start_date,
        "end_date": end_date,
    }


# ---------- Single booking ----------


@router_v1.get("/bookings/{booking_id}", response_model=schemas.BookingDetail)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    claims: Dict = Depends(get_current_user_claims),
):
    """
    Fetch one booking with its hoarding resolved.

    Access
    ------
    - Owner of the booking, or an admin.
    """
    booking = admission.get_booking_or_404(db, booking_id)
    ensure_owner_or_admin(booking, claims)
    return resolve_hoarding(booking)


# ---------- Create booking ----------


@router_v1.post(
    "/bookings",
    response_model=schemas.BookingDetail,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(booking_rate_limiter)],
)
def create_booking(
    booking_in: schemas.BookingCreate,
    db: Session = Depends(get_db),
    claims: Dict = Depends(get_current_user_claims),
):
    """
    Request a booking for the authenticated user.

    Behavior
    --------
    - 404 if the hoarding does not exist.
    - 400 if the hoarding is not available, the dates are invalid or in
      the past, or the range overlaps a pending/approved booking.
    - Otherwise stores a pending booking priced at whole days times the
      hoarding's daily rate.
    """
    if claims["role"] == ROLE_SERVICE_ACCOUNT:
        raise Forbidden("Service accounts cannot create bookings")

    booking = admission.request_booking(
        db,
        hoardings_client.fetch_hoarding,
        hoarding_id=booking_in.hoarding_id,
        requester_id=claims["user_id"],
        start_date=booking_in.start_date,
        end_date=booking_in.end_date,
    )
    return booking


# ---------- Admin decision ----------


@router_v1.put("/bookings/{booking_id}/status", response_model=schemas.BookingRead)
def update_booking_status(
    booking_id: int,
    body: schemas.BookingStatusUpdate,
    db: Session = Depends(get_db),
    claims: Dict = Depends(admin_only),
):
    """
    Approve or reject a booking (admin only).

    Approving flags the hoarding as booked.
    """
    return admission.set_status(
        db,
        booking_id,
        body.status,
        actor_is_admin=is_admin(claims),
        update_hoarding_status=hoardings_client.update_hoarding_status,
    )


# ---------- Payment record ----------


@router_v1.put(
    "/bookings/{booking_id}/payment",
    response_model=schemas.BookingRead,
    dependencies=[Depends(booking_rate_limiter)],
)
def update_booking_payment(
    booking_id: int,
    body: schemas.PaymentUpdate,
    db: Session = Depends(get_db),
    claims: Dict = Depends(get_current_user_claims),
):
    """
    Record payment status and details for a booking.

    Access
    ------
    - Owner of the booking, or an admin.
    """
    booking = admission.get_booking_or_404(db, booking_id)
    ensure_owner_or_admin(booking, claims)

    booking.payment_status = body.payment_status
    if body.transaction_id is not None:
        booking.transaction_id = body.transaction_id
    if body.payment_method is not None:
        booking.payment_method = body.payment_method
    if body.payment_date is not None:
        booking.payment_date = body.payment_date

    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


# ---------- Delete booking ----------


@router_v1.delete("/bookings/{booking_id}", dependencies=[Depends(booking_rate_limiter)])
def delete_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    claims: Dict = Depends(get_current_user_claims),
):
    """
    Remove a booking.

    Access
    ------
    - Owner of the booking, or an admin. Any status may be removed.
    """
    admission.delete_booking(
        db,
        booking_id,
        actor_id=claims["user_id"],
        actor_is_admin=is_admin(claims),
        update_hoarding_status=hoardings_client.update_hoarding_status,
    )
    return {"message": "Booking removed"}


app.include_router(router_v1)
