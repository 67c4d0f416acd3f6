"""Admin tooling for reservations. Every endpoint requires an admin user."""

import logging

from fastapi import APIRouter, Depends

from ..core.exceptions import DomainException
from ..schemas.reservation import CancelRequest, ReservationResponse
from ..services.dependencies import get_reservation_service
from ..services.reservation_service import ReservationService
from . import handle_domain_exception, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/reservations",
    tags=["admin-reservations"],
    dependencies=[Depends(require_admin)],
)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: str,
    payload: CancelRequest | None = None,
    admin_id: str = Depends(require_admin),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """
    Cancel any non-terminal reservation, including one already checked in.

    An active rental is charged for the days used before its hold is closed.
    """
    try:
        reservation = reservation_service.cancel_reservation(
            reservation_id,
            reason=(payload.reason if payload and payload.reason else "cancelled_by_admin"),
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    logger.info(
        "reservation_cancelled_by_admin",
        extra={"reservation_id": reservation_id, "admin_id": admin_id},
    )
    return ReservationResponse.model_validate(reservation)
