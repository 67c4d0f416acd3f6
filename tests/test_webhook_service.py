"""Tests for payment webhook reconciliation."""

import json

import pytest

from tests.conftest import RENTAL_END, RENTAL_START
from trailer_rental.core.exceptions import ValidationException
from trailer_rental.models.pin import Pin
from trailer_rental.models.reservation import ReservationStatus
from trailer_rental.models.webhook_event import WebhookEvent
from trailer_rental.schemas.webhook import AuthorizationFailed, AuthorizationSucceeded
from trailer_rental.services.webhook_service import PaymentWebhookService


@pytest.fixture
def webhook_service(db, settings, payment_processor, reservation_service):
    return PaymentWebhookService(
        db, settings, processor=payment_processor, reservation_service=reservation_service
    )


@pytest.fixture
def pending(reservation_service, user, trailer):
    return reservation_service.create_reservation(
        user_id=user.id, trailer_id=trailer.id, start=RENTAL_START, end=RENTAL_END
    ).reservation


def _succeeded(reservation, event_id="evt_1", with_metadata=True):
    return AuthorizationSucceeded(
        event_id=event_id,
        source_type="payment_intent.amount_capturable_updated",
        handle=reservation.authorization_id,
        reservation_id=reservation.id if with_metadata else None,
        amount_capturable=180000,
    )


class TestReconcile:
    def test_succeeded_event_confirms(self, webhook_service, pending, db):
        ack = webhook_service.reconcile(_succeeded(pending))

        assert ack.status == "processed"
        assert ack.outcome == "confirmed"
        db.refresh(pending)
        assert pending.status == ReservationStatus.CONFIRMED.value
        ledger = db.query(WebhookEvent).one()
        assert ledger.status == "processed"
        assert ledger.reservation_id == pending.id

    def test_reservation_resolved_from_handle(self, webhook_service, pending, db):
        ack = webhook_service.reconcile(_succeeded(pending, with_metadata=False))

        assert ack.outcome == "confirmed"

    def test_replayed_event_is_duplicate(self, webhook_service, pending, lock_controller, db):
        webhook_service.reconcile(_succeeded(pending))

        ack = webhook_service.reconcile(_succeeded(pending))

        assert ack.status == "duplicate"
        assert db.query(Pin).filter(Pin.reservation_id == pending.id).count() == 1
        assert len(lock_controller.grants) == 1

    def test_second_succeeded_event_with_new_id_is_noop(
        self, webhook_service, pending, lock_controller, db
    ):
        webhook_service.reconcile(_succeeded(pending, event_id="evt_1"))
        db.refresh(pending)
        version = pending.version

        ack = webhook_service.reconcile(_succeeded(pending, event_id="evt_2"))

        assert ack.outcome == "already_confirmed"
        db.refresh(pending)
        assert pending.version == version
        assert db.query(Pin).filter(Pin.reservation_id == pending.id).count() == 1
        assert len(lock_controller.grants) == 1

    def test_failed_event_cancels(self, webhook_service, pending, db):
        event = AuthorizationFailed(
            event_id="evt_fail",
            source_type="payment_intent.payment_failed",
            handle=pending.authorization_id,
            reservation_id=pending.id,
            failure_reason="card_declined",
        )

        ack = webhook_service.reconcile(event)

        assert ack.outcome == "cancelled"
        db.refresh(pending)
        assert pending.status == ReservationStatus.CANCELLED.value

    def test_unmatched_event_is_acknowledged(self, webhook_service, db):
        event = AuthorizationSucceeded(
            event_id="evt_orphan",
            source_type="payment_intent.succeeded",
            handle="pi_unknown",
        )

        ack = webhook_service.reconcile(event)

        assert ack.status == "processed"
        assert ack.outcome == "unmatched"

    def test_processing_failure_is_recorded_and_retryable(
        self, webhook_service, pending, monkeypatch, db
    ):
        original = webhook_service.reservation_service.confirm_reservation

        def _boom(*args, **kwargs):
            raise RuntimeError("database hiccup")

        monkeypatch.setattr(webhook_service.reservation_service, "confirm_reservation", _boom)
        with pytest.raises(RuntimeError):
            webhook_service.reconcile(_succeeded(pending))
        assert db.query(WebhookEvent).one().status == "failed"

        monkeypatch.setattr(webhook_service.reservation_service, "confirm_reservation", original)
        ack = webhook_service.reconcile(_succeeded(pending))

        assert ack.status == "processed"
        assert db.query(WebhookEvent).one().status == "processed"


class TestHandle:
    def test_bad_signature_rejected(self, webhook_service):
        with pytest.raises(ValidationException) as exc_info:
            webhook_service.handle(b"{}", "forged")
        assert exc_info.value.code == "INVALID_SIGNATURE"

    def test_unknown_event_type_ignored(self, webhook_service, db):
        ack = webhook_service.handle(json.dumps({"type": "customer.created"}).encode(), "valid")

        assert ack.status == "ignored"
        assert db.query(WebhookEvent).count() == 0
