from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .models import UserRole

MIN_PASSWORD_LENGTH = 6


def _lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if value is not None else None


# ---------- Input schemas ----------

class UserCreate(BaseModel):
    """
    Schema for user registration input.
    Public registration does NOT accept role; it is assigned internally.
    """
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    phone: Optional[str] = None
    address: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value):
        return _lower(value)


class UserLogin(BaseModel):
    """
    Schema for user login credentials.

    Attributes
    ----------
    email : str
        Email used for authentication.
    password : str
        Plaintext password supplied by the client.
    """
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value):
        return _lower(value)


class UserUpdate(BaseModel):
    """
    Schema for updating a profile.

    All fields are optional; only provided values are applied.
    """
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value):
        return _lower(value)


class UserRoleUpdate(BaseModel):
    """
    Schema used by admins to change a user's role.
    """
    role: UserRole


# ---------- Output schemas ----------

class UserRead(BaseModel):
    """
    Schema returned when reading user information.

    Exposes safe, non-sensitive fields and hides the password hash.
    """
    id: int
    name: str
    email: EmailStr
    role: UserRole
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ---------- Token schemas ----------

class Token(BaseModel):
    """
    Schema for JWT access token responses.

    Attributes
    ----------
    access_token : str
        Encoded JWT.
    token_type : str
        Token type, usually 'bearer'.
    user : UserRead
        The authenticated user.
    """
    access_token: str
    token_type: str = "bearer"
    user: UserRead
