"""Request/response schemas for account endpoints."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator
from pydantic.alias_generators import to_camel

from app.core.security import PASSWORD_MAX_LEN
from app.schemas.user import UserResponse

# Required text field: surrounding whitespace is stripped, then it must be non-empty.
NonBlankStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(_CamelModel):
    """Text fields of the multipart registration form (files are handled separately)."""

    full_name: NonBlankStr = Field(..., max_length=255)
    email: NonBlankStr = Field(..., max_length=320)
    username: NonBlankStr = Field(..., max_length=255)
    password: NonBlankStr = Field(..., max_length=PASSWORD_MAX_LEN)


class LoginRequest(_CamelModel):
    """Credentials for login; email and/or username identifies the account."""

    email: str | None = Field(default=None, max_length=320)
    username: str | None = Field(default=None, max_length=255)
    password: NonBlankStr = Field(..., max_length=PASSWORD_MAX_LEN)

    @model_validator(mode="after")
    def require_identifier(self) -> "LoginRequest":
        self.email = (self.email or "").strip() or None
        self.username = (self.username or "").strip() or None
        if self.email is None and self.username is None:
            raise ValueError("Email or username is required")
        return self


class RefreshRequest(_CamelModel):
    """Optional body for refresh when the client does not send the cookie."""

    refresh_token: str | None = None


class ChangePasswordRequest(_CamelModel):
    old_password: NonBlankStr = Field(..., max_length=PASSWORD_MAX_LEN)
    new_password: NonBlankStr = Field(..., max_length=PASSWORD_MAX_LEN)


class UpdateAccountRequest(_CamelModel):
    full_name: NonBlankStr = Field(..., max_length=255)
    email: NonBlankStr = Field(..., max_length=320)


class TokenPair(_CamelModel):
    """Access and refresh token issued together."""

    access_token: str
    refresh_token: str


class LoginResult(TokenPair):
    """Login payload: sanitized user plus both tokens."""

    user: UserResponse
