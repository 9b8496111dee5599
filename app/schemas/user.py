"""Sanitized user views. Never include password_hash or refresh_token."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class UserResponse(BaseModel):
    """User as returned to clients (camelCase keys)."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: int
    username: str
    email: str
    full_name: str
    avatar_url: str
    cover_image_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CurrentUser(UserResponse):
    """Authenticated user resolved by the access guard."""
