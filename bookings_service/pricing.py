# bookings_service/pricing.py
from datetime import datetime, timedelta

ONE_DAY = timedelta(days=1)


def duration_days(start_date: datetime, end_date: datetime) -> int:
    """
    Number of billable days in ``[start_date, end_date)``.

    Partial days count as a whole day.

    Raises
    ------
    ValueError
        If end_date is not strictly after start_date.
    """
    if end_date <= start_date:
        raise ValueError("end_date must be after start_date")
    days, remainder = divmod(end_date - start_date, ONE_DAY)
    return days + 1 if remainder else days


def calculate_total_amount(daily_price: float, start_date: datetime, end_date: datetime) -> float:
    """Total price of a booking: billable days times the daily rate."""
    return duration_days(start_date, end_date) * daily_price
