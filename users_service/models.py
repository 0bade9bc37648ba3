from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, Enum, Integer, String

from common.timeutils import utcnow

from .database import Base


class UserRole(str, PyEnum):
    """
    Roles a user account can hold.

    Roles
    -----
    user
        Browses hoardings and manages their own bookings.
    admin
        Manages hoardings, approves or rejects bookings, manages users.
    """
    USER = "user"
    ADMIN = "admin"


class User(Base):
    """
    SQLAlchemy model for application users.

    Attributes
    ----------
    id : int
        Primary key.
    name : str
        Full display name.
    email : str
        Unique, lowercased address used to log in.
    hashed_password : str
        Bcrypt hash of the password.
    role : UserRole
        user or admin.
    phone, address : str
        Optional contact details.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)
    phone = Column(String, nullable=True)
    address = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
