"""API v1 routes."""

from fastapi import APIRouter

from app.api.v1 import health, users
from app.schemas.common import ErrorResponse

# Error envelope documented for every account route (see app.main handlers).
ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in (400, 401, 404, 409, 500)
}

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(users.router, prefix="/users", tags=["users"], responses=ERROR_RESPONSES)
