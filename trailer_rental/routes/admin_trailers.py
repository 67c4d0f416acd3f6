"""Admin tooling for trailer maintenance. Every endpoint requires an admin user."""

import logging

from fastapi import APIRouter, Depends

from ..core.exceptions import DomainException
from ..schemas.reservation import TrailerResponse, TrailerStatusUpdate
from ..services.dependencies import get_reservation_service
from ..services.reservation_service import ReservationService
from . import handle_domain_exception, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/trailers", tags=["admin-trailers"], dependencies=[Depends(require_admin)]
)


@router.patch("/{trailer_id}/status", response_model=TrailerResponse)
def update_trailer_status(
    trailer_id: str,
    payload: TrailerStatusUpdate,
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> TrailerResponse:
    try:
        trailer = reservation_service.set_trailer_status(trailer_id, payload.status)
    except DomainException as exc:
        handle_domain_exception(exc)
    logger.info(
        "trailer_status_updated", extra={"trailer_id": trailer_id, "status": trailer.status}
    )
    return TrailerResponse.model_validate(trailer)
