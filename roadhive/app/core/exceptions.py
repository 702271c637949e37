"""
Domain errors and the handlers that turn them into the API error envelope.

Trip lifecycle, tracking and delivery OTP failures each carry a stable
``error_code`` that clients branch on.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, Optional

logger = logging.getLogger("roadhive.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InvalidTransitionError(AppException):
    """Raised when a trip status change skips or reverses the lifecycle."""

    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Cannot move load from '{current}' to '{target}'",
            error_code="ERR_TRIP_TRANSITION",
            status_code=status.HTTP_409_CONFLICT,
            details={"current_status": current, "requested_status": target}
        )


class LoadNotTrackableError(AppException):
    """Raised when a location write arrives for a load that is not in transit."""

    def __init__(self, current: str):
        super().__init__(
            message=f"Location can only be recorded while In Transit, current status: {current}",
            error_code="ERR_TRIP_NOT_TRACKABLE",
            status_code=status.HTTP_409_CONFLICT,
            details={"current_status": current}
        )


class OtpNotRequestedError(AppException):
    """Raised when verification is attempted before any code was issued."""

    def __init__(self, message: str = "No delivery OTP has been requested for this load"):
        super().__init__(
            message=message,
            error_code="ERR_OTP_NOT_REQUESTED",
            status_code=status.HTTP_409_CONFLICT
        )


class OtpStateError(AppException):
    """Raised when a delivery code is requested before the load has reached its drop point."""

    def __init__(self, current: str):
        super().__init__(
            message=f"Delivery OTP is only available once the load has Reached, current status: {current}",
            error_code="ERR_OTP_STATE",
            status_code=status.HTTP_409_CONFLICT,
            details={"current_status": current}
        )


class OtpAlreadyVerifiedError(AppException):
    """Raised when the load has already been completed."""

    def __init__(self):
        super().__init__(
            message="Delivery has already been verified",
            error_code="ERR_OTP_ALREADY_VERIFIED",
            status_code=status.HTTP_409_CONFLICT
        )


class InvalidOtpError(AppException):
    """Raised on a code mismatch. Never carries the expected code."""

    def __init__(self, attempts_remaining: int):
        super().__init__(
            message="Invalid OTP",
            error_code="ERR_OTP_INVALID",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"attempts_remaining": attempts_remaining}
        )


class OtpExpiredError(AppException):
    """Raised when the stored code is past its expiry."""

    def __init__(self):
        super().__init__(
            message="OTP has expired, request a new code",
            error_code="ERR_OTP_EXPIRED",
            status_code=status.HTTP_410_GONE
        )


class OtpLockedError(AppException):
    """Raised when too many wrong codes were submitted for the current OTP."""

    def __init__(self, max_attempts: int):
        super().__init__(
            message="Too many invalid attempts, request a new code",
            error_code="ERR_OTP_LOCKED",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={"max_attempts": max_attempts}
        )


class OtpDispatchError(AppException):
    """Raised when the notification collaborator could not deliver the code."""

    def __init__(self, load_id: str):
        super().__init__(
            message="OTP generated but could not be sent to the receiver",
            error_code="ERR_OTP_DISPATCH",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"load_id": load_id}
        )


# Global Exception Handlers

HTTP_ERROR_CODES = {
    400: "ERR_BAD_REQUEST",
    401: "ERR_UNAUTHORIZED",
    403: "ERR_FORBIDDEN",
    404: "ERR_NOT_FOUND",
    409: "ERR_CONFLICT",
    500: "ERR_INTERNAL_SERVER",
}


def error_response(status_code: int, error_code: str, message: str, details: Dict[str, Any] = None,
                   headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    """The one error envelope every route answers with: ``{error_code, message, details}``."""
    return JSONResponse(
        status_code=status_code,
        content={"error_code": error_code, "message": message, "details": details or {}},
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(
        exc.status_code,
        HTTP_ERROR_CODES.get(exc.status_code, "ERR_UNKNOWN"),
        exc.detail,
        headers=getattr(exc, "headers", None),
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances that JSON cannot encode
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ERR_VALIDATION",
        "Validation error",
        {"errors": jsonable_errors(exc)},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "ERR_INTERNAL_SERVER",
        "An internal server error occurred",
    )
