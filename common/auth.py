# common/auth.py
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from .errors import Forbidden, Unauthorized
from .settings import ALGORITHM, SECRET_KEY

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLE_SERVICE_ACCOUNT = "service_account"

SERVICE_ACCOUNT_USER_ID = 0

security = HTTPBearer(auto_error=False)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode a JWT issued by the users service and return its claims.

    Raises
    ------
    Unauthorized
        If the token is expired, malformed, or lacks sub/role/user_id.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except JWTError:
        raise Unauthorized("Invalid token")

    subject = payload.get("sub")
    role = payload.get("role")
    user_id = payload.get("user_id")
    if subject is None or role is None or user_id is None:
        raise Unauthorized()

    return {"sub": subject, "role": role, "user_id": user_id}


async def get_current_user_claims(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Dict[str, Any]:
    """
    Decode the bearer token from the Authorization header.

    Returns
    -------
    Dict[str, Any]
        Claims with 'sub', 'role' and 'user_id'.

    Raises
    ------
    Unauthorized
        If the header is missing or the token cannot be decoded.
    """
    if credentials is None:
        raise Unauthorized("No token, authorization denied")
    return decode_token(credentials.credentials)


def require_roles(*allowed_roles: str) -> Callable:
    """
    Build a dependency that enforces a set of allowed roles.

    Parameters
    ----------
    allowed_roles : str
        One or more role names that are permitted to access a route.

    Returns
    -------
    Callable
        A FastAPI dependency returning the caller's claims, raising
        HTTP 403 if the role is not allowed.
    """

    async def dependency(claims: Dict[str, Any] = Depends(get_current_user_claims)) -> Dict[str, Any]:
        if claims["role"] not in allowed_roles:
            raise Forbidden("Not enough permissions")
        return claims

    return dependency


def is_admin(claims: Dict[str, Any]) -> bool:
    return claims["role"] == ROLE_ADMIN


def make_service_account_token(service_name: str, minutes: int = 5) -> str:
    """Short-lived token used for service-to-service calls."""
    payload = {
        "sub": service_name,
        "role": ROLE_SERVICE_ACCOUNT,
        "user_id": SERVICE_ACCOUNT_USER_ID,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)
