# common/errors.py
import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from .settings import is_development

logger = logging.getLogger(__name__)


class InvalidRequest(HTTPException):
    """Malformed or semantically invalid input (bad dates, weak password...)."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class Conflict(HTTPException):
    """The request clashes with current state (unavailable, overlapping, duplicate)."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class Unauthorized(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Not authorized"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadGateway(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


class ServiceUnavailable(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


def _envelope(request: Request, service_name: str, status_code: int, message) -> dict:
    return {
        "service": service_name,
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "message": message,
    }


def register_exception_handlers(app: FastAPI, service_name: str) -> None:
    """
    Install the JSON error handlers shared by every service.

    Parameters
    ----------
    app : FastAPI
        Application to decorate.
    service_name : str
        Name reported in the ``service`` field of every error body.
    """

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(request, service_name, exc.status_code, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        content = _envelope(request, service_name, 400, "Validation Error")
        content["errors"] = [error.get("msg", str(error)) for error in exc.errors()]
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(IntegrityError)
    async def integrity_exception_handler(request: Request, exc: IntegrityError):
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        return JSONResponse(
            status_code=400,
            content=_envelope(request, service_name, 400, "Duplicate field value entered"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        content = _envelope(request, service_name, 500, "Something went wrong")
        if is_development():
            content["error"] = str(exc)
        return JSONResponse(status_code=500, content=content)
