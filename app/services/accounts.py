"""
Account workflows: register, login, token refresh, logout, password and profile updates.

Each workflow runs sequentially inside one request. External failures are caught
at the call site (media host, database, token signing) and re-raised as one
ApiError each; app.main renders them into the response envelope.
"""

import hmac
import logging
from pathlib import Path

import jwt
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    ApiError,
    BadRequestError,
    ConflictError,
    MissingTokenError,
    NotFoundError,
    ServerError,
    TokenMismatchError,
    TokenUserNotFoundError,
    UnauthorizedError,
)
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    subject_user_id,
)
from app.models import User
from app.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResult,
    RegisterRequest,
    TokenPair,
    UpdateAccountRequest,
)
from app.schemas.user import UserResponse
from app.services.media_store import MediaAsset, MediaStore, MediaStoreError

logger = logging.getLogger(__name__)


def find_by_username_or_email(
    db: Session,
    username: str | None = None,
    email: str | None = None,
) -> User | None:
    """Return the first user matching either username or email (both compared lowercase)."""
    conditions = []
    if username:
        conditions.append(User.username == username.strip().lower())
    if email:
        conditions.append(User.email == email.strip().lower())
    if not conditions:
        return None
    return db.query(User).filter(or_(*conditions)).first()


def _fetch_user(db: Session, user_id: int) -> User | None:
    """Read the row back from the database rather than the session identity map."""
    return (
        db.query(User)
        .populate_existing()
        .filter(User.id == user_id)
        .first()
    )


def _require_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def generate_access_and_refresh_tokens(db: Session, user_id: int) -> TokenPair:
    """
    Issue an access/refresh pair and store the refresh token on the user.

    The stored value replaces any earlier refresh token, so only the newest one can
    be exchanged. Any failure (unknown user, signing, persistence) is a ServerError.
    """
    try:
        user = _require_user(db, user_id)
        access_token = create_access_token(user)
        refresh_token = create_refresh_token(user.id)
        user.refresh_token = refresh_token
        db.commit()
    except (ApiError, SQLAlchemyError, jwt.PyJWTError) as e:
        db.rollback()
        logger.error(
            "Token generation failed",
            extra={"user_id": user_id, "reason": str(e)[:500]},
        )
        raise ServerError("Something went wrong while generating tokens") from e
    return TokenPair(access_token=access_token, refresh_token=refresh_token)


async def _delete_quietly(media: MediaStore, asset: MediaAsset) -> None:
    """Best-effort removal of an uploaded asset; failures are logged only."""
    try:
        await media.delete(asset.public_id)
        logger.info("Compensating media deletion", extra={"public_id": asset.public_id})
    except Exception:
        logger.exception(
            "Compensating media deletion failed",
            extra={"public_id": asset.public_id},
        )


async def register_user(
    db: Session,
    media: MediaStore,
    data: RegisterRequest,
    avatar_path: Path | None,
    cover_image_path: Path | None = None,
) -> User:
    """
    Create an account after uploading its avatar (and optional cover image).

    Steps:
    1. Reject duplicates (username or email) with ConflictError before any upload.
    2. Require the avatar file.
    3. Upload avatar, then cover image. An upload failure is a ServerError; when
       the cover fails the avatar already uploaded is left on the media host.
    4. Insert the user and read it back. If either fails, delete the uploaded
       avatar and raise. A unique-constraint violation from a concurrent
       registration surfaces as ConflictError.
    """
    username = data.username.lower()
    email = data.email.lower()

    if find_by_username_or_email(db, username=username, email=email) is not None:
        raise ConflictError("User already exists")
    if avatar_path is None:
        raise BadRequestError("Avatar is required")

    try:
        avatar = await media.upload(avatar_path)
    except MediaStoreError as e:
        logger.error("Avatar upload failed", extra={"reason": e.message[:500]})
        raise ServerError("Something went wrong while uploading avatar") from e

    cover_image: MediaAsset | None = None
    if cover_image_path is not None:
        try:
            cover_image = await media.upload(cover_image_path)
        except MediaStoreError as e:
            logger.warning(
                "Cover image upload failed; uploaded avatar is not removed",
                extra={"avatar_public_id": avatar.public_id, "reason": e.message[:500]},
            )
            raise ServerError("Something went wrong while uploading cover image") from e

    try:
        user = User(
            full_name=data.full_name,
            email=email,
            username=username,
            avatar_url=avatar.url,
            cover_image_url=cover_image.url if cover_image else None,
        )
        # bcrypt is CPU bound; keep it off the event loop.
        await run_in_threadpool(user.set_password, data.password)
        db.add(user)
        db.commit()
        created = _fetch_user(db, user.id)
        if created is None:
            raise ServerError("Something went wrong while registering user")
    except IntegrityError as e:
        db.rollback()
        logger.info("Registration lost a uniqueness race", extra={"username": username})
        await _delete_quietly(media, avatar)
        raise ConflictError("User already exists") from e
    except (SQLAlchemyError, ServerError) as e:
        db.rollback()
        logger.error("User creation failed", extra={"username": username, "reason": str(e)[:500]})
        await _delete_quietly(media, avatar)
        raise ServerError(
            "Something went wrong while registering user and images were deleted"
        ) from e

    logger.info("User registered", extra={"user_id": created.id})
    return created


def login_user(db: Session, data: LoginRequest) -> LoginResult:
    """Check credentials and issue a fresh token pair."""
    user = find_by_username_or_email(db, username=data.username, email=data.email)
    if user is None:
        raise NotFoundError("User not found")
    if not user.is_password_correct(data.password):
        raise UnauthorizedError("Invalid credentials")

    tokens = generate_access_and_refresh_tokens(db, user.id)
    logged_in = _fetch_user(db, user.id)
    return LoginResult(
        user=UserResponse.model_validate(logged_in),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


def refresh_access_token(db: Session, incoming_token: str | None) -> TokenPair:
    """
    Exchange the current refresh token for a new pair (the refresh token rotates).

    A token that verifies but is not the one stored on the user (superseded by a
    later login/refresh, or cleared by logout) is rejected.
    """
    if not incoming_token:
        raise MissingTokenError("Refresh token is required")

    payload = decode_refresh_token(incoming_token)
    user_id = subject_user_id(payload)
    user = db.get(User, user_id)
    if user is None:
        raise TokenUserNotFoundError("Invalid refresh token")
    if not hmac.compare_digest(
        (user.refresh_token or "").encode(), incoming_token.encode()
    ):
        logger.warning("Rejected superseded refresh token", extra={"user_id": user_id})
        raise TokenMismatchError("Refresh token is expired or used")

    return generate_access_and_refresh_tokens(db, user.id)


def logout_user(db: Session, user_id: int) -> None:
    """Clear the stored refresh token so it can no longer be exchanged."""
    user = db.get(User, user_id)
    if user is None:
        return
    user.refresh_token = None
    db.commit()


def change_password(db: Session, user_id: int, data: ChangePasswordRequest) -> None:
    user = _require_user(db, user_id)
    if not user.is_password_correct(data.old_password):
        raise UnauthorizedError("Old password is incorrect")
    user.set_password(data.new_password)
    db.commit()


def update_account_details(db: Session, user_id: int, data: UpdateAccountRequest) -> User:
    """Replace full name and email; a taken email is a ConflictError."""
    user = _require_user(db, user_id)
    user.full_name = data.full_name
    user.email = data.email.lower()
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("Email is already in use") from e
    return _fetch_user(db, user_id)


async def _replace_media(
    db: Session,
    media: MediaStore,
    user_id: int,
    local_path: Path | None,
    column: str,
    label: str,
) -> User:
    # The previously stored asset is not deleted from the media host.
    if local_path is None:
        raise BadRequestError(f"{label} file is missing")
    try:
        asset = await media.upload(local_path)
    except MediaStoreError as e:
        logger.error(
            "Profile media upload failed",
            extra={"user_id": user_id, "field": column, "reason": e.message[:500]},
        )
        raise ServerError(f"Something went wrong while uploading {label.lower()}") from e
    if not asset.url:
        raise ServerError(f"Something went wrong while uploading {label.lower()}")

    user = _require_user(db, user_id)
    setattr(user, column, asset.url)
    db.commit()
    return _fetch_user(db, user_id)


async def update_avatar(
    db: Session, media: MediaStore, user_id: int, local_path: Path | None
) -> User:
    return await _replace_media(db, media, user_id, local_path, "avatar_url", "Avatar")


async def update_cover_image(
    db: Session, media: MediaStore, user_id: int, local_path: Path | None
) -> User:
    return await _replace_media(
        db, media, user_id, local_path, "cover_image_url", "Cover image"
    )
