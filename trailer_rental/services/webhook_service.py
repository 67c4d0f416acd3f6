"""
Payment webhook reconciliation.

Verified processor events are recorded in a ledger keyed by event id, then
applied to the reservation they name. Both layers make replays harmless: a
processed event id is skipped outright, and the state machine treats a
second "succeeded" for a confirmed reservation as a no-op.
"""

from typing import Optional, assert_never

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..integrations.payment_processor import PaymentProcessor
from ..repositories.factory import RepositoryFactory
from ..repositories.webhook_event_repository import STATUS_FAILED, STATUS_PROCESSED
from ..schemas.webhook import (
    AuthorizationFailed,
    AuthorizationSucceeded,
    PaymentWebhookEvent,
    WebhookAck,
)
from .base import BaseService
from .reservation_service import ReservationService


class PaymentWebhookService(BaseService):
    def __init__(
        self,
        db: Session,
        settings: Settings,
        *,
        processor: PaymentProcessor,
        reservation_service: ReservationService,
    ):
        super().__init__(db, settings)
        self.processor = processor
        self.reservation_service = reservation_service
        self.webhook_repository = RepositoryFactory.create_webhook_event_repository(db)
        self.reservation_repository = RepositoryFactory.create_reservation_repository(db)

    def handle(self, payload: bytes, signature: str) -> WebhookAck:
        """
        Verify and apply one delivery.

        Raises:
            ValidationException: signature or payload rejected
        """
        event = self.processor.parse_webhook(payload, signature)
        if event is None:
            return WebhookAck(status="ignored")
        return self.reconcile(event)

    def _resolve_reservation_id(self, event: PaymentWebhookEvent) -> Optional[str]:
        if event.reservation_id:
            reservation = self.reservation_repository.get_by_id(event.reservation_id)
        else:
            reservation = self.reservation_repository.get_by_authorization_id(event.handle)
        return reservation.id if reservation else None

    @BaseService.measure_operation("reconcile_payment_event")
    def reconcile(self, event: PaymentWebhookEvent) -> WebhookAck:
        reservation_id = self._resolve_reservation_id(event)
        with self.transaction():
            entry = self.webhook_repository.record_if_new(
                source=getattr(self.processor, "source", "payment"),
                event_id=event.event_id,
                event_type=event.source_type,
                reservation_id=reservation_id,
                payload=event.model_dump(),
            )
        if entry is None:
            self.logger.info("webhook_duplicate", extra={"event_id": event.event_id})
            return WebhookAck(status="duplicate", event_id=event.event_id)

        try:
            outcome = self._apply(event, reservation_id)
        except Exception as exc:
            self.db.rollback()
            with self.transaction():
                self.webhook_repository.mark(entry, STATUS_FAILED, str(exc))
            raise

        with self.transaction():
            self.webhook_repository.mark(entry, STATUS_PROCESSED)
        self.logger.info(
            "webhook_processed",
            extra={
                "event_id": event.event_id,
                "reservation_id": reservation_id,
                "outcome": outcome,
            },
        )
        return WebhookAck(status="processed", event_id=event.event_id, outcome=outcome)

    def _apply(self, event: PaymentWebhookEvent, reservation_id: Optional[str]) -> str:
        if reservation_id is None:
            self.logger.warning(
                "webhook_unmatched", extra={"event_id": event.event_id, "handle": event.handle}
            )
            return "unmatched"
        if isinstance(event, AuthorizationSucceeded):
            result = self.reservation_service.confirm_reservation(
                reservation_id, authorization_id=event.handle
            )
            return result.outcome.value
        if isinstance(event, AuthorizationFailed):
            changed = self.reservation_service.fail_authorization(
                reservation_id, event.failure_reason
            )
            return "cancelled" if changed else "no_op"
        assert_never(event)
