# trailer_rental/repositories/reservation_repository.py
"""
Reservation Repository.

Holds the interval and status queries the lifecycle engine needs. Overlap uses
the inclusive rule ``start <= existing_end AND end >= existing_start``: a
reservation ending exactly when another starts still conflicts.
"""

from datetime import datetime
import logging
from typing import Any, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.exceptions import StaleStateException
from ..models.reservation import BLOCKING_STATUSES, Reservation, ReservationStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ReservationRepository(BaseRepository[Reservation]):
    def __init__(self, db: Session):
        super().__init__(db, Reservation)

    def find_overlapping(
        self,
        trailer_id: str,
        start: datetime,
        end: datetime,
        *,
        statuses: Sequence[str] = BLOCKING_STATUSES,
        exclude_reservation_id: Optional[str] = None,
    ) -> List[Reservation]:
        """Reservations on ``trailer_id`` in ``statuses`` whose interval touches [start, end]."""
        query = self._build_query().filter(
            Reservation.trailer_id == trailer_id,
            Reservation.status.in_(list(statuses)),
            Reservation.start_date <= end,
            Reservation.end_date >= start,
        )
        if exclude_reservation_id:
            query = query.filter(Reservation.id != exclude_reservation_id)
        return self._execute_query(query.order_by(Reservation.start_date))

    def find_active_by_trailer(self, trailer_id: str) -> List[Reservation]:
        """Confirmed or active reservations currently holding the trailer."""
        query = self._build_query().filter(
            Reservation.trailer_id == trailer_id,
            Reservation.status.in_(list(BLOCKING_STATUSES)),
        )
        return self._execute_query(query)

    def find_active_due_for_extension(self, cutoff: datetime) -> List[Reservation]:
        """Active reservations whose end date is at or before ``cutoff``."""
        query = self._build_query().filter(
            Reservation.status == ReservationStatus.ACTIVE.value,
            Reservation.end_date <= cutoff,
        )
        return self._execute_query(query.order_by(Reservation.end_date))

    def get_by_authorization_id(self, authorization_id: str) -> Optional[Reservation]:
        return self.find_one_by(authorization_id=authorization_id)

    def transition(
        self,
        reservation: Reservation,
        *,
        expected_status: str,
        **values: Any,
    ) -> Reservation:
        """
        Compare-and-swap write for a single reservation.

        The row is updated only if its persisted status and version still match
        what ``reservation`` was read with; the version is bumped on success.

        Raises:
            StaleStateException: another writer got there first
        """
        expected_version = reservation.version
        affected = self._conditional_update(
            Reservation.id == reservation.id,
            Reservation.status == expected_status,
            Reservation.version == expected_version,
            version=expected_version + 1,
            **values,
        )
        if affected != 1:
            logger.info(
                "reservation_cas_rejected",
                extra={
                    "reservation_id": reservation.id,
                    "expected_status": expected_status,
                    "expected_version": expected_version,
                },
            )
            raise StaleStateException("Reservation", reservation.id, expected_status)
        self.refresh(reservation)
        return reservation
