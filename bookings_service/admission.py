# bookings_service/admission.py
"""
Booking admission and status transitions.

Hoarding lookups and flag updates are passed in as callables so the rules
here do not depend on how the hoardings service is reached.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from common.errors import Conflict, Forbidden, InvalidRequest, NotFound
from common.settings import RELEASE_POLICY_AUTO, hoarding_release_policy, strict_status_transitions
from common.timeutils import utcnow

from . import models
from .locks import hoarding_lock
from .pricing import calculate_total_amount
from .schemas import HoardingSnapshot

logger = logging.getLogger(__name__)

HOARDING_AVAILABLE = "available"
HOARDING_BOOKED = "booked"

HoardingLookup = Callable[[int], Optional[HoardingSnapshot]]
HoardingStatusSetter = Callable[[int, str], None]


def ensure_dates_valid(start_date: datetime, end_date: datetime, now: Optional[datetime] = None) -> None:
    """
    Validate a requested booking range.

    Raises
    ------
    InvalidRequest
        If end_date is not strictly after start_date, or start_date is not
        in the future.
    """
    if end_date <= start_date:
        raise InvalidRequest("End date must be after start date")
    if start_date <= (now or utcnow()):
        raise InvalidRequest("Start date must be in the future")


def has_overlap(
    db: Session,
    hoarding_id: int,
    start_date: datetime,
    end_date: datetime,
    ignore_booking_id: Optional[int] = None,
) -> bool:
    """
    Check if a pending or approved booking of the hoarding overlaps a range.

    Ranges are half-open: a booking ending at the instant another starts
    does not overlap it. Two ranges overlap when
    existing.start_date < end_date and existing.end_date > start_date.
    """
    q = (
        db.query(models.Booking)
        .filter(models.Booking.hoarding_id == hoarding_id)
        .filter(models.Booking.status.in_(models.BLOCKING_STATUSES))
        .filter(models.Booking.start_date < end_date)
        .filter(models.Booking.end_date > start_date)
    )

    if ignore_booking_id is not None:
        q = q.filter(models.Booking.id != ignore_booking_id)

    return db.query(q.exists()).scalar()


def request_booking(
    db: Session,
    fetch_hoarding: HoardingLookup,
    hoarding_id: int,
    requester_id: int,
    start_date: datetime,
    end_date: datetime,
    now: Optional[datetime] = None,
) -> models.Booking:
    """
    Admit or refuse a booking request.

    Checks, in order: the hoarding exists, its flag is ``available``, the
    dates are well-formed and in the future, and no pending or approved
    booking overlaps. The overlap scan and the insert run under a
    per-hoarding lock.

    Parameters
    ----------
    db : Session
        Database session.
    fetch_hoarding : HoardingLookup
        Returns the hoarding for an id, or None if it does not exist.
    hoarding_id : int
        Hoarding to book.
    requester_id : int
        Id of the user making the request.
    start_date, end_date : datetime
        Requested range, naive UTC.
    now : Optional[datetime]
        Admission time; defaults to the current UTC time.

    Returns
    -------
    Booking
        The persisted pending booking. ``booking.hoarding`` is set to the
        snapshot used for pricing.

    Raises
    ------
    NotFound
        If the hoarding does not exist.
    Conflict
        If the hoarding is not available or the dates overlap another
        booking.
    InvalidRequest
        If the dates are invalid.
    """
    hoarding = fetch_hoarding(hoarding_id)
    if hoarding is None:
        raise NotFound("Hoarding not found")

    if hoarding.status != HOARDING_AVAILABLE:
        raise Conflict("Hoarding is not available")

    ensure_dates_valid(start_date, end_date, now=now)

    total_amount = calculate_total_amount(hoarding.price, start_date, end_date)

    with hoarding_lock(db, hoarding_id):
        try:
            if has_overlap(db, hoarding_id, start_date, end_date):
                raise Conflict("Hoarding is already booked for the selected dates")

            booking = models.Booking(
                hoarding_id=hoarding_id,
                user_id=requester_id,
                start_date=start_date,
                end_date=end_date,
                status=models.BookingStatus.PENDING,
                total_amount=total_amount,
            )
            db.add(booking)
            db.commit()
        except Exception:
            db.rollback()
            raise

    db.refresh(booking)
    booking.hoarding = hoarding
    logger.info(
        "Booking %s admitted for hoarding %s by user %s (%s -> %s, total %.2f)",
        booking.id, hoarding_id, requester_id, start_date, end_date, total_amount,
    )
    return booking


def get_booking_or_404(db: Session, booking_id: int) -> models.Booking:
    booking = db.query(models.Booking).filter(models.Booking.id == booking_id).first()
    if not booking:
        raise NotFound("Booking not found")
    return booking


def release_hoarding_if_unused(
    db: Session,
    hoarding_id: int,
    update_hoarding_status: HoardingStatusSetter,
) -> bool:
    """
    Put a hoarding back to ``available`` under the ``auto`` release policy.

    Only done when no approved booking of the hoarding remains. Returns
    True if the hoarding was released.
    """
    if hoarding_release_policy() != RELEASE_POLICY_AUTO:
        return False

    still_approved = db.query(
        db.query(models.Booking)
        .filter(models.Booking.hoarding_id == hoarding_id)
        .filter(models.Booking.status == models.BookingStatus.APPROVED)
        .exists()
    ).scalar()
    if still_approved:
        return False

    update_hoarding_status(hoarding_id, HOARDING_AVAILABLE)
    logger.info("Hoarding %s released after its last approved booking ended", hoarding_id)
    return True


def set_status(
    db: Session,
    booking_id: int,
    new_status: models.BookingStatus,
    actor_is_admin: bool,
    update_hoarding_status: HoardingStatusSetter,
) -> models.Booking:
    """
    Approve or reject a booking.

    Approval flags the hoarding as ``booked`` before the booking is saved;
    if that call fails the booking is left unchanged. Rejection does not
    touch the hoarding unless the ``auto`` release policy applies to a
    previously approved booking.

    Raises
    ------
    Forbidden
        If the actor is not an admin.
    NotFound
        If the booking does not exist.
    InvalidRequest
        If ``new_status`` is pending.
    Conflict
        Under strict transitions, if the booking is no longer pending.
    """
    if not actor_is_admin:
        raise Forbidden("Access denied. Admin only.")

    if new_status == models.BookingStatus.PENDING:
        raise InvalidRequest("Status must be 'approved' or 'rejected'")

    booking = get_booking_or_404(db, booking_id)
    previous = booking.status

    # Without strict transitions a rejected booking can be approved again with
    # no fresh overlap scan, even if its dates were since given to another booking.
    if strict_status_transitions() and previous != models.BookingStatus.PENDING:
        raise Conflict(f"Booking is already {previous.value}")

    if new_status == models.BookingStatus.APPROVED:
        update_hoarding_status(booking.hoarding_id, HOARDING_BOOKED)

    booking.status = new_status
    db.add(booking)
    db.commit()
    db.refresh(booking)
    logger.info("Booking %s status %s -> %s", booking.id, previous.value, new_status.value)

    if previous == models.BookingStatus.APPROVED and new_status == models.BookingStatus.REJECTED:
        release_hoarding_if_unused(db, booking.hoarding_id, update_hoarding_status)

    return booking


def delete_booking(
    db: Session,
    booking_id: int,
    actor_id: int,
    actor_is_admin: bool,
    update_hoarding_status: HoardingStatusSetter,
) -> None:
    """
    Remove a booking, whatever its status.

    Allowed for the booking's owner and for admins.
    """
    booking = get_booking_or_404(db, booking_id)

    if not actor_is_admin and booking.user_id != actor_id:
        raise Forbidden("Not authorized")

    was_approved = booking.status == models.BookingStatus.APPROVED
    hoarding_id = booking.hoarding_id

    db.delete(booking)
    db.commit()
    logger.info("Booking %s removed by user %s", booking_id, actor_id)

    if was_approved:
        release_hoarding_if_unused(db, hoarding_id, update_hoarding_status)
