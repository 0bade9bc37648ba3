from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from common.timeutils import to_naive_utc

from .models import BookingStatus, PaymentStatus


class HoardingSnapshot(BaseModel):
    """
    The parts of a hoarding the bookings service relies on, as returned by
    the hoardings service.
    """
    id: int
    location: str
    price: float
    status: str
    image: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class BookingCreate(BaseModel):
    """
    Schema for requesting a booking.

    Dates may carry a timezone; they are stored as naive UTC.
    """
    hoarding_id: int = Field(..., ge=1)
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_to_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class BookingStatusUpdate(BaseModel):
    """
    Schema used by admins to approve or reject a booking.
    """
    status: BookingStatus

    @field_validator("status")
    @classmethod
    def only_terminal_statuses(cls, value: BookingStatus) -> BookingStatus:
        if value == BookingStatus.PENDING:
            raise ValueError("status must be 'approved' or 'rejected'")
        return value


class PaymentUpdate(BaseModel):
    """
    Schema for recording payment information on a booking.

    Nothing is charged; the values are stored as given.
    """
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    payment_date: Optional[datetime] = None

    @field_validator("payment_date")
    @classmethod
    def normalize_to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value) if value is not None else None


class BookingRead(BaseModel):
    """
    Schema returned when reading booking information.
    """
    id: int
    hoarding_id: int
    user_id: int
    start_date: datetime
    end_date: datetime
    status: BookingStatus
    total_amount: float
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    payment_method: Optional[str] = None
    payment_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BookingDetail(BookingRead):
    """
    A booking with its hoarding resolved.

    ``hoarding`` is None when the hoarding no longer exists.
    """
    hoarding: Optional[HoardingSnapshot] = None


class Availability(BaseModel):
    hoarding_id: int
    available: bool
    start_date: datetime
    end_date: datetime
