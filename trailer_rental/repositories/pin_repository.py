# trailer_rental/repositories/pin_repository.py
"""
PIN Repository.

Deactivation is a conditional update on ``is_active = true`` so concurrent
sweeps and re-issues never deactivate the same PIN twice.
"""

from datetime import datetime
from typing import List, Sequence

from sqlalchemy.orm import Session

from ..models.pin import LockSyncStatus, Pin
from .base_repository import BaseRepository


class PinRepository(BaseRepository[Pin]):
    def __init__(self, db: Session):
        super().__init__(db, Pin)

    def find_active_for_reservation(self, reservation_id: str) -> List[Pin]:
        query = self._build_query().filter(
            Pin.reservation_id == reservation_id,
            Pin.is_active.is_(True),
        )
        return self._execute_query(query)

    def find_expired_pins(self, now: datetime) -> List[Pin]:
        """Active PINs whose validity window has closed."""
        query = self._build_query().filter(
            Pin.is_active.is_(True),
            Pin.valid_until <= now,
        )
        return self._execute_query(query.order_by(Pin.valid_until))

    def find_pending_revocations(self, max_attempts: int) -> List[Pin]:
        """Inactive PINs the physical lock has not yet confirmed as revoked."""
        query = self._build_query().filter(
            Pin.is_active.is_(False),
            Pin.revocation_status == LockSyncStatus.PENDING.value,
            Pin.revocation_attempts < max_attempts,
        )
        return self._execute_query(query.order_by(Pin.deactivated_at))

    def find_pending_grants(self, now: datetime) -> List[Pin]:
        """Active, unexpired PINs the physical lock has not yet confirmed as granted."""
        query = self._build_query().filter(
            Pin.is_active.is_(True),
            Pin.grant_status.in_([LockSyncStatus.PENDING.value, LockSyncStatus.FAILED.value]),
            Pin.valid_until > now,
        )
        return self._execute_query(query.order_by(Pin.valid_from))

    def deactivate(self, pin_ids: Sequence[str], now: datetime) -> int:
        """
        Flip ``is_active`` to False for the still-active PINs among ``pin_ids``.

        Returns the number of PINs actually deactivated by this call; PINs
        already inactive are left untouched.
        """
        if not pin_ids:
            return 0
        return self._conditional_update(
            Pin.id.in_(list(pin_ids)),
            Pin.is_active.is_(True),
            is_active=False,
            deactivated_at=now,
            revocation_status=LockSyncStatus.PENDING.value,
        )
