"""
Error taxonomy for account workflows.

Every workflow failure is raised as an ApiError carrying an HTTP status and a
message; the exception handlers in app.main turn it into the response envelope.

    ApiError
    ├── BadRequestError (400)       missing or blank required fields
    ├── UnauthorizedError (401)     bad credentials, invalid or mismatched token
    │   ├── MissingTokenError
    │   ├── InvalidTokenError       bad signature, expired, malformed
    │   ├── TokenUserNotFoundError  token subject does not exist
    │   └── TokenMismatchError      refresh token is not the stored one
    ├── NotFoundError (404)
    ├── ConflictError (409)         duplicate username or email
    └── ServerError (500)           upload, persistence or token failures
"""

from collections.abc import Sequence
from typing import Any


def format_validation_errors(errors: Sequence[Any]) -> list[dict[str, str]]:
    """Reduce pydantic error dicts to JSON-safe {field, message} pairs."""
    formatted = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        message = str(err.get("msg", "Invalid value")).removeprefix("Value error, ")
        formatted.append({"field": ".".join(loc), "message": message})
    return formatted


BLANK_FIELD_MESSAGES = ("Field required", "String should have at least 1 character")


def validation_message(errors: list[dict[str, str]]) -> str:
    """Summary line for formatted validation errors; missing or blank fields share one message."""
    if errors and all(e["message"] in BLANK_FIELD_MESSAGES for e in errors):
        return "All fields are required"
    if errors:
        first = errors[0]
        return f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    return "Invalid request"


class ApiError(Exception):
    """Base error with an HTTP status code and a client-facing message."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        errors: list[Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status_code,
            "message": self.message,
            "success": False,
            "errors": self.errors,
        }


class BadRequestError(ApiError):
    status_code = 400


class UnauthorizedError(ApiError):
    status_code = 401


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class ServerError(ApiError):
    status_code = 500


class MissingTokenError(UnauthorizedError):
    """No token in cookie, header or body."""


class InvalidTokenError(UnauthorizedError):
    """Token failed signature, expiry, format or type checks."""


class TokenUserNotFoundError(UnauthorizedError):
    """Token decoded but its subject is not a known user."""


class TokenMismatchError(UnauthorizedError):
    """Refresh token is valid but has been superseded or cleared."""
