"""
Expiry Sweeper.

Deactivates PINs whose validity has passed, then pushes every outstanding
physical revocation and every unacknowledged grant to the lock. Lock failures
are logged and left pending for the next run.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.timezone_utils import utc_now
from .base import BaseService
from .pin_service import PinService


@dataclass
class ExpirySweepResult:
    deactivated: int
    revoked: int
    revocation_failures: int
    granted: int = 0
    grant_failures: int = 0


class ExpirySweeper(BaseService):
    def __init__(self, db: Session, settings: Settings, pin_service: PinService):
        super().__init__(db, settings)
        self.pin_service = pin_service

    @BaseService.measure_operation("expiry_sweep")
    def run(self, now: Optional[datetime] = None) -> ExpirySweepResult:
        now = now or utc_now()
        deactivated = self.pin_service.expire_sweep(now)
        revoked, failures = self.pin_service.retry_pending_revocations()
        granted, grant_failures = self.pin_service.retry_pending_grants(now)
        result = ExpirySweepResult(
            deactivated=deactivated,
            revoked=revoked,
            revocation_failures=failures,
            granted=granted,
            grant_failures=grant_failures,
        )
        self.logger.info(
            "expiry_sweep_completed",
            extra={
                "deactivated": deactivated,
                "revoked": revoked,
                "failures": failures,
                "granted": granted,
                "grant_failures": grant_failures,
            },
        )
        return result
