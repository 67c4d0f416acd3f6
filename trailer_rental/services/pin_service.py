# trailer_rental/services/pin_service.py
"""
PIN Issuance & Expiry Manager.

``Pin.is_active`` is the system of record: it flips to False as soon as a PIN
is superseded, expired, or its reservation ends. Telling the physical lock is
a separate, best-effort step tracked in ``grant_status`` and ``revocation_status``
and retried by the hourly sweep until the lock acknowledges it.
"""

from datetime import datetime
import secrets
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import ExternalServiceException
from ..core.timezone_utils import end_of_local_day, utc_now
from ..integrations.lock_controller import LockController
from ..models.pin import LockSyncStatus, Pin
from ..models.reservation import Reservation
from ..models.trailer import Trailer
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService


def generate_pin_code() -> str:
    """Uniform four-digit code in 1000..9999."""
    return str(1000 + secrets.randbelow(9000))


def pin_valid_until(reservation: Reservation, trailer: Trailer) -> datetime:
    """24:00 of the reservation's end date in the trailer's local time zone."""
    return end_of_local_day(reservation.end_date, trailer.timezone)


class PinService(BaseService):
    def __init__(self, db: Session, settings: Settings, lock_controller: LockController):
        super().__init__(db, settings)
        self.lock_controller = lock_controller
        self.pin_repository = RepositoryFactory.create_pin_repository(db)
        self.reservation_repository = RepositoryFactory.create_reservation_repository(db)

    def issue(
        self,
        reservation: Reservation,
        lock_id: str,
        valid_until: datetime,
        *,
        now: Optional[datetime] = None,
    ) -> Pin:
        """
        Make a fresh PIN the sole active one for ``reservation``.

        Runs inside the caller's transaction: the previous PIN is deactivated,
        the new one inserted and the reservation's PIN fields updated together.
        """
        now = now or utc_now()
        superseded = self.pin_repository.find_active_for_reservation(reservation.id)
        self.pin_repository.deactivate([pin.id for pin in superseded], now)

        code = generate_pin_code()
        pin = self.pin_repository.create(
            reservation_id=reservation.id,
            lock_id=lock_id,
            code=code,
            valid_from=now,
            valid_until=valid_until,
            is_active=True,
            grant_status=LockSyncStatus.PENDING.value,
        )
        self.reservation_repository.transition(
            reservation,
            expected_status=reservation.status,
            pin_code=code,
            pin_expiry=valid_until,
        )
        self.logger.info(
            "pin_issued",
            extra={
                "reservation_id": reservation.id,
                "pin_id": pin.id,
                "valid_until": valid_until.isoformat(),
                "superseded": len(superseded),
            },
        )
        return pin

    def deactivate_for_reservation(self, reservation_id: str, now: datetime) -> List[str]:
        """Deactivate every active PIN of a reservation; returns their ids. No commit."""
        active = self.pin_repository.find_active_for_reservation(reservation_id)
        pin_ids = [pin.id for pin in active]
        self.pin_repository.deactivate(pin_ids, now)
        return pin_ids

    @BaseService.measure_operation("expire_pins")
    def expire_sweep(self, now: Optional[datetime] = None) -> int:
        """
        Deactivate every active PIN whose ``valid_until`` has passed.

        Returns how many PINs this call deactivated. A PIN already deactivated
        by a concurrent sweep is skipped by the conditional update.
        """
        now = now or utc_now()
        with self.transaction():
            expired = self.pin_repository.find_expired_pins(now)
            count = self.pin_repository.deactivate([pin.id for pin in expired], now)
        prometheus_metrics.record_sweep_item("pin_expiry", "deactivated", count)
        if count:
            self.logger.info("pins_expired", extra={"count": count, "now": now.isoformat()})
        return count

    def push_grant(self, pin_id: str) -> bool:
        """Program the code into the lock. Failure is recorded, never raised."""
        pin = self.pin_repository.get_by_id(pin_id)
        if pin is None or not pin.is_active:
            return False
        try:
            self.lock_controller.grant_access(
                pin.lock_id, pin.code, pin.valid_from, pin.valid_until
            )
        except ExternalServiceException as exc:
            self.logger.warning(
                "lock_grant_failed",
                extra={"pin_id": pin.id, "lock_id": pin.lock_id, "error": exc.message},
            )
            prometheus_metrics.record_lock_call("grant", "failed")
            with self.transaction():
                pin.grant_status = LockSyncStatus.FAILED.value
                pin.last_lock_error = exc.message
            return False
        prometheus_metrics.record_lock_call("grant", "acknowledged")
        with self.transaction():
            pin.grant_status = LockSyncStatus.ACKNOWLEDGED.value
        return True

    def push_revocation(self, pin_id: str) -> bool:
        """
        Ask the lock to forget a deactivated PIN.

        Each failure counts one attempt; after ``lock_revocation_max_attempts``
        the PIN is marked failed and left for manual follow-up.
        """
        pin = self.pin_repository.get_by_id(pin_id)
        if pin is None or pin.is_active:
            return False
        if pin.revocation_status != LockSyncStatus.PENDING.value:
            return pin.revocation_status == LockSyncStatus.ACKNOWLEDGED.value
        try:
            self.lock_controller.revoke_access(pin.lock_id, pin.code)
        except ExternalServiceException as exc:
            prometheus_metrics.record_lock_call("revoke", "failed")
            with self.transaction():
                pin.revocation_attempts += 1
                pin.last_lock_error = exc.message
                if pin.revocation_attempts >= self.settings.lock_revocation_max_attempts:
                    pin.revocation_status = LockSyncStatus.FAILED.value
            self.logger.warning(
                "lock_revoke_failed",
                extra={
                    "pin_id": pin.id,
                    "lock_id": pin.lock_id,
                    "attempts": pin.revocation_attempts,
                    "error": exc.message,
                },
            )
            return False
        prometheus_metrics.record_lock_call("revoke", "acknowledged")
        with self.transaction():
            pin.revocation_attempts += 1
            pin.revocation_status = LockSyncStatus.ACKNOWLEDGED.value
            pin.revoked_at = utc_now()
        return True

    def retry_pending_revocations(self) -> Tuple[int, int]:
        """Push every outstanding revocation once. Returns (acknowledged, failed)."""
        pending = self.pin_repository.find_pending_revocations(
            self.settings.lock_revocation_max_attempts
        )
        acknowledged = failed = 0
        for pin_id in [pin.id for pin in pending]:
            if self.push_revocation(pin_id):
                acknowledged += 1
            else:
                failed += 1
        prometheus_metrics.record_sweep_item("pin_revocation", "acknowledged", acknowledged)
        prometheus_metrics.record_sweep_item("pin_revocation", "failed", failed)
        return acknowledged, failed

    def retry_pending_grants(self, now: Optional[datetime] = None) -> Tuple[int, int]:
        """
        Push every active PIN the lock has not acknowledged. Returns (acknowledged, failed).

        A PIN stays eligible until it is acknowledged, deactivated or expired.
        """
        now = now or utc_now()
        pending = self.pin_repository.find_pending_grants(now)
        acknowledged = failed = 0
        for pin_id in [pin.id for pin in pending]:
            if self.push_grant(pin_id):
                acknowledged += 1
            else:
                failed += 1
        prometheus_metrics.record_sweep_item("pin_grant", "acknowledged", acknowledged)
        prometheus_metrics.record_sweep_item("pin_grant", "failed", failed)
        return acknowledged, failed
