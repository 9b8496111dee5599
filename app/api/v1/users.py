"""Account endpoints: register, login, refresh, logout, password and profile updates."""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.api.v1.auth import (
    REFRESH_TOKEN_COOKIE,
    clear_auth_cookies,
    get_current_user,
    set_auth_cookies,
)
from app.core.config import get_settings
from app.core.database import get_db
from app.core.errors import BadRequestError, format_validation_errors, validation_message
from app.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResult,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
    UpdateAccountRequest,
)
from app.schemas.common import ApiResponse
from app.schemas.user import CurrentUser, UserResponse
from app.services import accounts
from app.services.media_store import MediaStore, get_media_store
from app.services.uploads import discard_temp_files, has_file, save_upload_to_temp

router = APIRouter()


@router.post("/register", response_model=ApiResponse[UserResponse], status_code=201)
async def register(
    db: Annotated[Session, Depends(get_db)],
    media: Annotated[MediaStore, Depends(get_media_store)],
    full_name: Annotated[str | None, Form(alias="fullName")] = None,
    email: Annotated[str | None, Form()] = None,
    username: Annotated[str | None, Form()] = None,
    password: Annotated[str | None, Form()] = None,
    avatar: Annotated[UploadFile | None, File()] = None,
    cover_image: Annotated[UploadFile | None, File(alias="coverImage")] = None,
) -> ApiResponse[UserResponse]:
    """
    Register with multipart/form-data: fullName, email, username, password,
    an `avatar` image (required) and an optional `coverImage`.
    """
    fields = {"fullName": full_name, "email": email, "username": username, "password": password}
    try:
        data = RegisterRequest.model_validate(
            {key: value for key, value in fields.items() if value is not None}
        )
    except ValidationError as e:
        errors = format_validation_errors(e.errors())
        raise BadRequestError(validation_message(errors), errors=errors) from e

    settings = get_settings()
    avatar_path = cover_image_path = None
    try:
        if has_file(avatar):
            avatar_path = await save_upload_to_temp(avatar, "avatar", settings)
        if has_file(cover_image):
            cover_image_path = await save_upload_to_temp(cover_image, "coverImage", settings)
        user = await accounts.register_user(db, media, data, avatar_path, cover_image_path)
    finally:
        discard_temp_files(avatar_path, cover_image_path)

    return ApiResponse(
        status=201,
        data=UserResponse.model_validate(user),
        message="User registered successfully",
    )


@router.post("/login", response_model=ApiResponse[LoginResult])
def login(
    body: LoginRequest,
    response: Response,
    db: Annotated[Session, Depends(get_db)],
) -> ApiResponse[LoginResult]:
    """
    Authenticate with email and/or username plus password.
    Both tokens are returned in the body and set as httpOnly cookies.
    """
    result = accounts.login_user(db, body)
    set_auth_cookies(response, result.access_token, result.refresh_token)
    return ApiResponse(status=200, data=result, message="User logged in successfully")


@router.post("/refresh-token", response_model=ApiResponse[TokenPair])
def refresh_token(
    request: Request,
    response: Response,
    db: Annotated[Session, Depends(get_db)],
    body: RefreshRequest | None = None,
) -> ApiResponse[TokenPair]:
    """Rotate the token pair using the refreshToken cookie (or `refreshToken` in the body)."""
    incoming = request.cookies.get(REFRESH_TOKEN_COOKIE) or (
        body.refresh_token if body is not None else None
    )
    tokens = accounts.refresh_access_token(db, incoming)
    set_auth_cookies(response, tokens.access_token, tokens.refresh_token)
    return ApiResponse(status=200, data=tokens, message="Access token refreshed")


@router.post("/logout", response_model=ApiResponse[dict])
def logout(
    response: Response,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> ApiResponse[dict]:
    accounts.logout_user(db, current_user.id)
    clear_auth_cookies(response)
    return ApiResponse(status=200, data={}, message="User logged out successfully")


@router.post("/change-password", response_model=ApiResponse[dict])
def change_password(
    body: ChangePasswordRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> ApiResponse[dict]:
    accounts.change_password(db, current_user.id, body)
    return ApiResponse(status=200, data={}, message="Password changed successfully")


@router.get("/current-user", response_model=ApiResponse[UserResponse])
def current_user(
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> ApiResponse[UserResponse]:
    return ApiResponse(status=200, data=user, message="Current user details")


@router.patch("/update-account", response_model=ApiResponse[UserResponse])
def update_account(
    body: UpdateAccountRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> ApiResponse[UserResponse]:
    user = accounts.update_account_details(db, current_user.id, body)
    return ApiResponse(
        status=200,
        data=UserResponse.model_validate(user),
        message="Account details updated successfully",
    )


@router.patch("/avatar", response_model=ApiResponse[UserResponse])
async def update_avatar(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    media: Annotated[MediaStore, Depends(get_media_store)],
    avatar: Annotated[UploadFile | None, File()] = None,
) -> ApiResponse[UserResponse]:
    """Replace the avatar with a single `avatar` image file."""
    path = None
    try:
        if has_file(avatar):
            path = await save_upload_to_temp(avatar, "avatar", get_settings())
        user = await accounts.update_avatar(db, media, current_user.id, path)
    finally:
        discard_temp_files(path)
    return ApiResponse(
        status=200,
        data=UserResponse.model_validate(user),
        message="Avatar updated successfully",
    )


@router.patch("/cover-image", response_model=ApiResponse[UserResponse])
async def update_cover_image(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    media: Annotated[MediaStore, Depends(get_media_store)],
    cover_image: Annotated[UploadFile | None, File(alias="coverImage")] = None,
) -> ApiResponse[UserResponse]:
    """Replace the cover image with a single `coverImage` image file."""
    path = None
    try:
        if has_file(cover_image):
            path = await save_upload_to_temp(cover_image, "coverImage", get_settings())
        user = await accounts.update_cover_image(db, media, current_user.id, path)
    finally:
        discard_temp_files(path)
    return ApiResponse(
        status=200,
        data=UserResponse.model_validate(user),
        message="Cover image updated successfully",
    )
