"""Password hashing and access/refresh JWT creation and verification."""

import uuid
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Literal

import bcrypt
import jwt

from app.core.config import settings
from app.core.errors import InvalidTokenError

if TYPE_CHECKING:
    from app.models.user import User

# Bcrypt cost (rounds); 12 is a good default for security vs speed.
BCRYPT_ROUNDS = 12

PASSWORD_MAX_LEN = 128

TokenType = Literal["access", "refresh"]


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    # bcrypt has a 72-byte limit; truncate to avoid errors (validation already limits length).
    pw_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash."""
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def _secret_for(token_type: TokenType) -> str:
    if token_type == "access":
        return settings.ACCESS_TOKEN_SECRET.get_secret_value()
    return settings.REFRESH_TOKEN_SECRET.get_secret_value()


def _encode(claims: dict[str, Any], token_type: TokenType, expire_minutes: int) -> str:
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        **claims,
        "type": token_type,
        "iat": now,
        "exp": now + timedelta(minutes=expire_minutes),
        # Tokens minted within the same second must still differ.
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, _secret_for(token_type), algorithm=settings.JWT_ALGORITHM)


def create_access_token(user: "User") -> str:
    """Short-lived token carrying the user id plus identity claims for clients."""
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "username": user.username,
        "fullName": user.full_name,
    }
    return _encode(claims, "access", settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def create_refresh_token(user_id: int) -> str:
    """Longer-lived token carrying only the user id; used to mint new access tokens."""
    return _encode({"sub": str(user_id)}, "refresh", settings.REFRESH_TOKEN_EXPIRE_MINUTES)


def decode_token(token: str, token_type: TokenType) -> dict[str, Any]:
    """
    Decode and validate a JWT against the secret for token_type.

    Raises InvalidTokenError on bad signature, expiry, malformed input or a
    token of the other type.
    """
    try:
        payload = jwt.decode(
            token,
            _secret_for(token_type),
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidTokenError(f"{token_type.capitalize()} token has expired") from e
    except jwt.PyJWTError as e:
        raise InvalidTokenError(f"Invalid {token_type} token") from e
    if payload.get("type") != token_type:
        raise InvalidTokenError(f"Invalid {token_type} token")
    return payload


def decode_access_token(token: str) -> dict[str, Any]:
    return decode_token(token, "access")


def decode_refresh_token(token: str) -> dict[str, Any]:
    return decode_token(token, "refresh")


def subject_user_id(payload: dict[str, Any]) -> int:
    """Return the integer user id from the sub claim; raises InvalidTokenError if unusable."""
    sub = payload.get("sub")
    try:
        return int(sub)
    except (TypeError, ValueError):
        raise InvalidTokenError("Invalid token payload") from None
