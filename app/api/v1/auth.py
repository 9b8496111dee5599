"""Access guard dependency (get_current_user) and auth cookie helpers."""

import logging
from typing import Annotated

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.errors import MissingTokenError, TokenUserNotFoundError
from app.core.security import decode_access_token, subject_user_id
from app.models.user import User
from app.schemas.user import CurrentUser

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"


def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> CurrentUser:
    """
    Dependency: require a valid access token and return the sanitized current user.

    The accessToken cookie takes precedence over an Authorization: Bearer header.
    The user is also attached to request.state.user. Every rejection is a 401.
    """
    token = request.cookies.get(ACCESS_TOKEN_COOKIE) or (
        credentials.credentials if credentials is not None else None
    )
    if not token:
        raise MissingTokenError("Unauthorized, token not found")

    payload = decode_access_token(token)
    user_id = subject_user_id(payload)
    user = db.get(User, user_id)
    if user is None:
        logger.info("Access token for unknown user", extra={"user_id": user_id})
        raise TokenUserNotFoundError("Unauthorized, invalid access token")

    current = CurrentUser.model_validate(user)
    request.state.user = current
    return current


def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    """Set both tokens as httpOnly cookies; secure only in prod."""
    secure = get_settings().cookie_secure
    for key, value in (
        (ACCESS_TOKEN_COOKIE, access_token),
        (REFRESH_TOKEN_COOKIE, refresh_token),
    ):
        response.set_cookie(key, value, httponly=True, secure=secure, path="/")


def clear_auth_cookies(response: Response) -> None:
    secure = get_settings().cookie_secure
    for key in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(key, httponly=True, secure=secure, path="/")
