"""Availability check endpoint."""

from fastapi import APIRouter, Depends

from ..core.exceptions import DomainException
from ..schemas.reservation import AvailabilityCheckRequest, AvailabilityCheckResponse
from ..services.availability_service import AvailabilityService
from ..services.dependencies import get_availability_service
from . import handle_domain_exception

router = APIRouter(prefix="/availability", tags=["availability"])


@router.post("/check", response_model=AvailabilityCheckResponse)
def check_availability(
    payload: AvailabilityCheckRequest,
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityCheckResponse:
    """
    Advisory check for the booking screen.

    Pending reservations are not counted, so a trailer reported available can
    still be lost to another renter whose payment completes first.
    """
    try:
        result = availability_service.check(
            payload.trailer_id, payload.start_date, payload.end_date
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return AvailabilityCheckResponse(
        trailer_id=result.trailer_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        available=result.available,
        rental_days=result.rental_days,
        total_price=result.total_price,
    )
