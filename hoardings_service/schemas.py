from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import HoardingStatus


class HoardingSize(BaseModel):
    """Size of a hoarding in meters."""
    width: float = Field(..., ge=1)
    height: float = Field(..., ge=1)


class HoardingBase(BaseModel):
    """
    Base schema for hoarding information.

    Shared fields used when creating and reading hoardings.
    """
    location: str = Field(..., min_length=1)
    size: HoardingSize
    price: float = Field(..., ge=0)
    image: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class HoardingCreate(HoardingBase):
    """
    Schema for creating a new hoarding.

    The status may be preset (e.g. straight into maintenance); it defaults
    to available.
    """
    status: HoardingStatus = HoardingStatus.AVAILABLE


class HoardingUpdate(BaseModel):
    """
    Schema for partial updates to a hoarding.

    All fields are optional and only provided values will be updated.
    """
    location: Optional[str] = Field(default=None, min_length=1)
    size: Optional[HoardingSize] = None
    price: Optional[float] = Field(default=None, ge=0)
    status: Optional[HoardingStatus] = None
    image: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class HoardingStatusUpdate(BaseModel):
    status: HoardingStatus


class HoardingRead(HoardingBase):
    """
    Schema returned when reading hoarding data.
    """
    id: int
    status: HoardingStatus
    created_by: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class HoardingAvailability(BaseModel):
    """
    Availability of a hoarding, optionally for a date range.

    Without a range this is the stored flag; with one, a hoarding that is not
    in maintenance is "booked" only if a pending or approved booking overlaps
    the range.
    """
    hoarding_id: int
    status: HoardingStatus
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
