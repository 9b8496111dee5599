"""Pydantic request/response schemas."""

from app.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResult,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
    UpdateAccountRequest,
)
from app.schemas.common import ApiResponse, ErrorResponse
from app.schemas.health import HealthResponse
from app.schemas.user import CurrentUser, UserResponse

__all__ = [
    "ApiResponse",
    "ChangePasswordRequest",
    "CurrentUser",
    "ErrorResponse",
    "HealthResponse",
    "LoginRequest",
    "LoginResult",
    "RefreshRequest",
    "RegisterRequest",
    "TokenPair",
    "UpdateAccountRequest",
    "UserResponse",
]
