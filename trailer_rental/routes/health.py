"""Health and metrics endpoints."""

from datetime import datetime, timezone
import logging
from typing import Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import __version__
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..services.dependencies import get_db

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: datetime
    checks: Dict[str, bool]


@router.get("/health", response_model=HealthCheckResponse)
def health_check(db: Session = Depends(get_db)) -> HealthCheckResponse:
    try:
        db.execute(text("SELECT 1"))
        db_status = True
        status = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        db_status = False
        status = "degraded"

    return HealthCheckResponse(
        status=status,
        service="trailer-rental",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        checks={"database": db_status},
    )


@router.get("/metrics")
def metrics() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
