# trailer_rental/services/extension_service.py
"""
Auto-Extension Scheduler.

A trailer that has not been returned keeps its reservation alive: every run
extends each active reservation ending within the lookahead by one day.
Reservations are processed independently; one failure never stops the batch.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import DomainException, RepositoryException
from ..core.timezone_utils import local_date, utc_now
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .reservation_service import ReservationService


@dataclass
class ExtensionBatchResult:
    extended: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, object]:
        return {
            "extended": len(self.extended),
            "skipped": len(self.skipped),
            "failed": len(self.errors),
            "errors": dict(self.errors),
        }


class AutoExtensionService(BaseService):
    def __init__(self, db: Session, settings: Settings, reservation_service: ReservationService):
        super().__init__(db, settings)
        self.reservation_service = reservation_service
        self.reservation_repository = RepositoryFactory.create_reservation_repository(db)

    @BaseService.measure_operation("auto_extend")
    def run(self, now: Optional[datetime] = None) -> ExtensionBatchResult:
        now = now or utc_now()
        today = local_date(now, self.settings.business_timezone)
        cutoff = now + timedelta(hours=self.settings.auto_extension_lookahead_hours)
        result = ExtensionBatchResult()
        due_ids: List[str] = []
        for reservation in self.reservation_repository.find_active_due_for_extension(cutoff):
            if reservation.last_auto_extended_on == today:
                result.skipped.append(reservation.id)
            else:
                due_ids.append(reservation.id)
        # Close the read transaction before per-reservation commits
        self.db.commit()

        for reservation_id in due_ids:
            try:
                self.reservation_service.extend_reservation(
                    reservation_id, now=now, automatic=True
                )
            except (DomainException, RepositoryException) as exc:
                self.db.rollback()
                result.errors[reservation_id] = str(exc)
                self.logger.error(
                    "auto_extension_failed",
                    extra={"reservation_id": reservation_id, "error": str(exc)},
                )
                continue
            result.extended.append(reservation_id)

        prometheus_metrics.record_sweep_item("auto_extension", "extended", len(result.extended))
        prometheus_metrics.record_sweep_item("auto_extension", "failed", len(result.errors))
        self.logger.info("auto_extension_completed", extra=result.as_dict())
        return result
