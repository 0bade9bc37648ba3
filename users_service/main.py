from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from common.auth import make_service_account_token
from common.circuit_breaker import CircuitBreaker
from common.errors import (
    BadGateway,
    Conflict,
    Forbidden,
    InvalidRequest,
    NotFound,
    ServiceUnavailable,
    Unauthorized,
    register_exception_handlers,
)
from common.logging_config import configure_logging
from common.rate_limiter import api_rate_limiter, auth_rate_limiter
from common.settings import BOOKINGS_SERVICE_URL, CORS_ORIGINS

from . import models, schemas
from .auth import (
    authenticate_user,
    create_user_token,
    get_current_user,
    get_password_hash,
    get_user_by_email,
    require_admin,
)
from .database import Base, engine, get_db
from .models import UserRole
from .schemas import MIN_PASSWORD_LENGTH

SERVICE_NAME = "users"

logger = configure_logging(SERVICE_NAME)

# Create tables on startup
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Users Service", version="1.0.0")
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
    return {"service": SERVICE_NAME, "status": "running"}


def validate_password_strength(password: str):
    """
    Reject passwords shorter than the minimum length.

    Raises
    ------
    HTTPException
        400 if the password is too short.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidRequest(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def ensure_email_free(db: Session, email: str, user_id: Optional[int] = None):
    owner = get_user_by_email(db, email)
    if owner and owner.id != user_id:
        raise Conflict("Email already in use")


def apply_profile_update(db: Session, user: models.User, update_data: schemas.UserUpdate) -> models.User:
    if update_data.name is not None:
        user.name = update_data.name
    if update_data.email is not None and update_data.email != user.email:
        ensure_email_free(db, update_data.email, user.id)
        user.email = update_data.email
    if update_data.phone is not None:
        user.phone = update_data.phone
    if update_data.address is not None:
        user.address = update_data.address

    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# ---------- Registration / login ----------

@router_v1.post(
    "/auth/register",
    response_model=schemas.Token,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limiter)],
)
def register_user(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    """
    Register a new user and log them in.

    Behavior:
    - First account created becomes ADMIN.
    - All subsequent public registrations become regular users.
    - Email must be unique.

    Returns
    -------
    Token
        Access token and the created user.
    """
    if get_user_by_email(db, user_in.email):
        raise Conflict("User already exists")

    validate_password_strength(user_in.password)

    assigned_role = UserRole.ADMIN if db.query(models.User).count() == 0 else UserRole.USER

    user = models.User(
        name=user_in.name,
        email=user_in.email,
        hashed_password=get_password_hash(user_in.password),
        role=assigned_role,
        phone=user_in.phone,
        address=user_in.address,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s as %s", user.id, user.role.value)

    return {
        "access_token": create_user_token(user),
        "token_type": "bearer",
        "user": schemas.UserRead.model_validate(user),
    }


@router_v1.post("/auth/login", response_model=schemas.Token, dependencies=[Depends(auth_rate_limiter)])
def login(credentials: schemas.UserLogin, db: Session = Depends(get_db)):
    """
    Authenticate a user and return a JWT access token.

    The token carries the user's email as ``sub``, their role and user_id.
    """
    user = authenticate_user(db, credentials.email, credentials.password)
    if not user:
        logger.info("Failed login for %s", credentials.email)
        raise Unauthorized("Invalid credentials")

    return {
        "access_token": create_user_token(user),
        "token_type": "bearer",
        "user": schemas.UserRead.model_validate(user),
    }


# ---------- Current user profile ----------

@router_v1.get("/auth/me", response_model=schemas.UserRead)
def get_my_profile(current_user: models.User = Depends(get_current_user)):
    return current_user


@router_v1.put("/auth/me", response_model=schemas.UserRead)
def update_my_profile(
    update_data: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Update the authenticated user's name, email, phone or address.

    Raises
    ------
    HTTPException
        400 if the new email is already used by another account.
    """
    return apply_profile_update(db, current_user, update_data)


# ---------- Admin: user management ----------

def get_user_or_404(db: Session, user_id: int) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return user


@router_v1.get("/users", response_model=List[schemas.UserRead])
def list_users(
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    return db.query(models.User).order_by(models.User.created_at.desc(), models.User.id.desc()).all()


@router_v1.get("/users/{user_id}", response_model=schemas.UserRead)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    return get_user_or_404(db, user_id)


@router_v1.put("/users/{user_id}", response_model=schemas.UserRead)
def admin_update_user(
    user_id: int,
    update_data: schemas.UserUpdate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    """
    Admin only: update another user's profile.
    """
    return apply_profile_update(db, get_user_or_404(db, user_id), update_data)


@router_v1.put("/users/{user_id}/role", response_model=schemas.UserRead)
def change_user_role(
    user_id: int,
    role_update: schemas.UserRoleUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    """
    Admin only: change a user's role.

    The last admin cannot demote themselves.
    """
    user = get_user_or_404(db, user_id)

    if user.role == UserRole.ADMIN and role_update.role != UserRole.ADMIN:
        ensure_other_admin_exists(db, user)

    user.role = role_update.role
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("User %s role set to %s by %s", user.id, user.role.value, current_user.id)
    return user


def ensure_other_admin_exists(db: Session, user: models.User):
    other_admins = (
        db.query(models.User)
        .filter(models.User.role == UserRole.ADMIN, models.User.id != user.id)
        .count()
    )
    if other_admins == 0:
        raise InvalidRequest("Cannot remove the last admin user. Create another admin first.")


@router_v1.delete("/users/{user_id}")
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    """
    Admin only: delete a user.

    Their bookings are left in place.
    """
    user = get_user_or_404(db, user_id)
    if user.role == UserRole.ADMIN:
        ensure_other_admin_exists(db, user)

    db.delete(user)
    db.commit()
    logger.info("User %s deleted", user_id)
    return {"message": "User removed"}


# ---------- Booking history ----------

@router_v1.get("/users/{user_id}/bookings")
def get_user_booking_history(
    user_id: int,
    current_user: models.User = Depends(get_current_user),
):
    """
    Booking history of a user, fetched from the Bookings service.

    Access
    ------
    - The user themselves, or an admin.
    """
    if current_user.role != UserRole.ADMIN and current_user.id != user_id:
        raise Forbidden("Not allowed to view booking history for this user")

    if not bookings_circuit_breaker.allow_request():
        raise ServiceUnavailable("Bookings service temporarily unavailable (circuit open)")

    headers = {"Authorization": f"Bearer {make_service_account_token('users_service')}"}

    try:
        response = httpx.get(
            f"{BOOKINGS_SERVICE_URL}/api/v1/bookings",
            params={"user_id": user_id},
            headers=headers,
            timeout=5.0,
        )
    except httpx.RequestError as exc:
        bookings_circuit_breaker.record_failure()
        logger.warning("Booking history call failed: %s", exc)
        raise BadGateway("Failed to contact bookings service")

    if response.status_code != 200:
        bookings_circuit_breaker.record_failure()
        raise BadGateway("Bookings service returned an error")

    bookings_circuit_breaker.record_success()
    return {"user_id": user_id, "bookings": response.json()}


app.include_router(router_v1)
