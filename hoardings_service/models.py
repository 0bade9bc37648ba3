from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, Float, Integer, String, Text

from common.timeutils import utcnow

from .database import Base


class HoardingStatus(str, PyEnum):
    """
    Availability flag of a hoarding.

    Values
    ------
    available
        Open for new booking requests.
    booked
        Set when an admin approves a booking; blocks new requests.
    maintenance
        Temporarily withdrawn by an admin.
    """
    AVAILABLE = "available"
    BOOKED = "booked"
    MAINTENANCE = "maintenance"


class Hoarding(Base):
    """
    SQLAlchemy model representing an outdoor advertising space.

    Attributes
    ----------
    id : int
        Primary key.
    location : str
        Free-text location (street, city...).
    width, height : float
        Size in meters, at least 1 each.
    price : float
        Daily rate, never negative.
    status : HoardingStatus
        Availability flag.
    image : str
        Optional image URL.
    description : str
        Optional description.
    created_by : int
        Id of the admin who created the hoarding.
    """
    __tablename__ = "hoardings"
    __table_args__ = (
        CheckConstraint("width >= 1", name="check_hoarding_width"),
        CheckConstraint("height >= 1", name="check_hoarding_height"),
        CheckConstraint("price >= 0", name="check_hoarding_price"),
    )

    id = Column(Integer, primary_key=True, index=True)
    location = Column(String(255), nullable=False, index=True)
    width = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    status = Column(Enum(HoardingStatus), nullable=False, default=HoardingStatus.AVAILABLE)
    image = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def size(self) -> dict:
        return {"width": self.width, "height": self.height}
