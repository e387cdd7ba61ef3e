"""
Error taxonomy and the FastAPI handlers that turn it into JSON responses.

Every error response has the shape {"message": ..., "error": ...}. Raw driver
or runtime detail is logged server-side only.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    error = "unexpected_error"

    def __init__(self, message: str, error: str = None):
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error


class ValidationFailed(AppError):
    status_code = 400
    error = "validation_error"


class DuplicateEmail(AppError):
    status_code = 400
    error = "duplicate_email"


class NotFound(AppError):
    status_code = 404
    error = "not_found"


class AuthenticationFailed(AppError):
    status_code = 401
    error = "authentication_failed"


class MissingToken(AuthenticationFailed):
    error = "missing_token"


class InvalidToken(AuthenticationFailed):
    error = "invalid_token"


class ExpiredToken(AuthenticationFailed):
    error = "token_expired"


class PrincipalNotFound(AuthenticationFailed):
    error = "principal_not_found"


class PrincipalUnverified(AuthenticationFailed):
    error = "principal_unverified"


class Forbidden(AppError):
    status_code = 403
    error = "forbidden"


class BusinessRuleViolation(AppError):
    status_code = 400
    error = "business_rule_violation"


class AlreadyVerified(BusinessRuleViolation):
    error = "already_verified"


class InvalidOTP(BusinessRuleViolation):
    error = "invalid_otp"


class OTPExpired(BusinessRuleViolation):
    error = "otp_expired"


class Unexpected(AppError):
    pass


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message, "error": exc.error})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "msg": err.get("msg")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"message": "Validation failed", "error": "validation_error", "errors": errors},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"message": "Internal server error", "error": "unexpected_error"})
