from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, Float, Index, Integer, String

from common.timeutils import utcnow

from .database import Base


class BookingStatus(str, PyEnum):
    """
    Admission status of a booking.

    Values
    ------
    pending
        Requested, waiting for an admin decision. Blocks overlapping requests.
    approved
        Accepted by an admin. Blocks overlapping requests.
    rejected
        Refused by an admin. Does not block the hoarding.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Statuses that hold the hoarding for their date range
BLOCKING_STATUSES = (BookingStatus.PENDING, BookingStatus.APPROVED)


class PaymentStatus(str, PyEnum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class Booking(Base):
    """
    SQLAlchemy model representing a hoarding booking.

    Attributes
    ----------
    id : int
        Primary key.
    hoarding_id : int
        Identifier of the booked hoarding (owned by the hoardings service).
    user_id : int
        Identifier of the requesting user.
    start_date, end_date : datetime
        Half-open reserved range ``[start_date, end_date)``, naive UTC.
    status : BookingStatus
        pending / approved / rejected.
    total_amount : float
        Whole days (rounded up) times the hoarding's daily price at creation.
    payment_status : PaymentStatus
        Recorded payment state; no workflow acts on it.
    transaction_id, payment_method, payment_date
        Optional payment details.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="check_booking_dates"),
        CheckConstraint("total_amount >= 0", name="check_booking_total_amount"),
        Index("ix_bookings_hoarding_range", "hoarding_id", "start_date", "end_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hoarding_id = Column(Integer, index=True, nullable=False)
    user_id = Column(Integer, index=True, nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING)
    total_amount = Column(Float, nullable=False)
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    transaction_id = Column(String(255), nullable=True)
    payment_method = Column(String(100), nullable=True)
    payment_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
