"""Repository for the inbound webhook ledger."""

from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.timezone_utils import utc_now
from ..models.webhook_event import WebhookEvent
from .base_repository import BaseRepository

STATUS_RECEIVED = "received"
STATUS_PROCESSED = "processed"
STATUS_FAILED = "failed"


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    def __init__(self, db: Session):
        super().__init__(db, WebhookEvent)

    def record_if_new(
        self,
        *,
        source: str,
        event_id: str,
        event_type: str,
        reservation_id: Optional[str],
        payload: Dict[str, Any],
    ) -> Optional[WebhookEvent]:
        """
        Claim ``(source, event_id)`` for processing.

        Returns None when the event was already processed, including when a
        concurrent delivery wins the unique constraint. An entry whose earlier
        processing did not finish is returned again so the event can be retried.
        """
        existing = self.find_one_by(source=source, event_id=event_id)
        if existing is not None:
            return None if existing.status == STATUS_PROCESSED else existing
        savepoint = self.db.begin_nested()
        try:
            event = WebhookEvent(
                source=source,
                event_id=event_id,
                event_type=event_type,
                reservation_id=reservation_id,
                payload=payload,
                status=STATUS_RECEIVED,
            )
            self.db.add(event)
            self.db.flush()
        except IntegrityError:
            savepoint.rollback()
            self.logger.info(
                "webhook_event_duplicate_insert",
                extra={"source": source, "event_id": event_id},
            )
            return None
        savepoint.commit()
        return event

    def mark(self, event: WebhookEvent, status: str, error: Optional[str] = None) -> None:
        event.status = status
        event.processing_error = error
        event.processed_at = utc_now()
        self.db.flush()
