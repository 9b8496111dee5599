"""Health check endpoint with database and media store status."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import check_db_connected, get_db
from app.schemas.health import HealthResponse
from app.services.media_store import is_media_configured

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(db: Session = Depends(get_db)) -> HealthResponse:
    """
    Return service health status, database connectivity and whether the
    media host is configured. Used by load balancers and monitoring.
    """
    settings = get_settings()
    db_status = "connected" if check_db_connected(db) else "disconnected"
    media_status = "configured" if is_media_configured(settings) else "not_configured"

    return HealthResponse(
        status="ok",
        environment=settings.APP_ENV,
        database=db_status,
        media_store=media_status,
    )
