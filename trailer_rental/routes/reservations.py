# trailer_rental/routes/reservations.py
"""
Reservation endpoints used by the renter app.

All endpoints act on behalf of the user named in the ``X-User-Id`` header.
"""

import logging

from fastapi import APIRouter, Depends, status

from ..core.exceptions import DomainException
from ..schemas.reservation import (
    CancelRequest,
    CheckOutRequest,
    ReservationCreate,
    ReservationCreatedResponse,
    ReservationResponse,
)
from ..services.dependencies import get_reservation_service
from ..services.reservation_service import ReservationService
from . import get_current_user_id, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reservations", tags=["reservations"])


@router.post(
    "",
    response_model=ReservationCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_reservation(
    payload: ReservationCreate,
    user_id: str = Depends(get_current_user_id),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationCreatedResponse:
    """
    Create a reservation and request its payment authorization.

    The returned client secret lets the app complete the card hold; the
    reservation is confirmed once the processor reports success.
    """
    try:
        created = reservation_service.create_reservation(
            user_id=user_id,
            trailer_id=payload.trailer_id,
            start=payload.start_date,
            end=payload.end_date,
            company_tax_id=payload.company_tax_id,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return ReservationCreatedResponse(
        reservation=ReservationResponse.model_validate(created.reservation),
        client_secret=created.client_secret,
    )


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: str,
    user_id: str = Depends(get_current_user_id),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = reservation_service.get_reservation(reservation_id, user_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: str,
    payload: CancelRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = reservation_service.cancel_reservation(
            reservation_id, user_id=user_id, reason=payload.reason if payload else None
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/check-in", response_model=ReservationResponse)
def check_in(
    reservation_id: str,
    user_id: str = Depends(get_current_user_id),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = reservation_service.check_in(reservation_id, user_id=user_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/check-out", response_model=ReservationResponse)
def check_out(
    reservation_id: str,
    payload: CheckOutRequest,
    user_id: str = Depends(get_current_user_id),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    """Return the trailer: requires the return photos and settles the payment."""
    try:
        reservation = reservation_service.check_out(
            reservation_id, user_id=user_id, return_photos=payload.return_photos
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return ReservationResponse.model_validate(reservation)


@router.post("/{reservation_id}/extend", response_model=ReservationResponse)
def extend_reservation(
    reservation_id: str,
    user_id: str = Depends(get_current_user_id),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = reservation_service.extend_reservation(reservation_id, user_id=user_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return ReservationResponse.model_validate(reservation)
