# trailer_rental/services/availability_service.py
"""
Availability checks against the authoritative reservation records.

Only confirmed and active reservations block a trailer; pending reservations
never do, so two renters can both hold a pending booking for the same dates.
Exclusivity is enforced when a reservation is confirmed.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import NotFoundException, ValidationException
from ..core.timezone_utils import ensure_utc
from ..models.reservation import Reservation
from ..models.trailer import Trailer
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .pricing import PricingTiers, quote, rental_days


@dataclass
class AvailabilityResult:
    trailer_id: str
    available: bool
    rental_days: int
    total_price: int
    conflicts: List[Reservation]
    under_maintenance: bool = False


class AvailabilityService(BaseService):
    def __init__(self, db: Session, settings: Settings):
        super().__init__(db, settings)
        self.trailer_repository = RepositoryFactory.create_trailer_repository(db)
        self.reservation_repository = RepositoryFactory.create_reservation_repository(db)

    def get_trailer(self, trailer_id: str) -> Trailer:
        trailer = self.trailer_repository.get_by_id(trailer_id)
        if trailer is None:
            raise NotFoundException(f"Trailer {trailer_id} not found", code="TRAILER_NOT_FOUND")
        return trailer

    def find_conflicts(
        self,
        trailer_id: str,
        start: datetime,
        end: datetime,
        *,
        exclude_reservation_id: Optional[str] = None,
    ) -> List[Reservation]:
        return self.reservation_repository.find_overlapping(
            trailer_id,
            ensure_utc(start),
            ensure_utc(end),
            exclude_reservation_id=exclude_reservation_id,
        )

    def is_available(self, trailer_id: str, start: datetime, end: datetime) -> bool:
        return self.check(trailer_id, start, end).available

    @BaseService.measure_operation("check_availability")
    def check(self, trailer_id: str, start: datetime, end: datetime) -> AvailabilityResult:
        """
        Evaluate a candidate interval for one trailer.

        Raises:
            ValidationException: start is not before end
            NotFoundException: trailer does not exist
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if start >= end:
            raise ValidationException(
                "Start must be before end",
                code="INVALID_INTERVAL",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )
        trailer = self.get_trailer(trailer_id)
        conflicts = self.find_conflicts(trailer.id, start, end)
        return AvailabilityResult(
            trailer_id=trailer.id,
            available=not conflicts and not trailer.is_under_maintenance,
            rental_days=rental_days(start, end),
            total_price=quote(PricingTiers.for_trailer(trailer), start, end),
            conflicts=conflicts,
            under_maintenance=trailer.is_under_maintenance,
        )
