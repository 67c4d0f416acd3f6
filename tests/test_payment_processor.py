"""Tests for the Stripe adapter's request shapes and failure translation."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import stripe

from trailer_rental.core.exceptions import ExternalServiceException, PaymentException
from trailer_rental.integrations.payment_processor import StripePaymentProcessor


@pytest.fixture
def stripe_client():
    return MagicMock()


@pytest.fixture
def processor(settings, stripe_client):
    return StripePaymentProcessor(settings, client=stripe_client)


def _authorize(processor):
    return processor.create_authorization(
        amount=180000,
        currency="czk",
        customer_ref="cus_test_renter",
        metadata={"reservation_id": "res_1"},
        idempotency_key="authorize-res_1",
    )


class TestAuthorization:
    def test_creates_manual_capture_intent(self, processor, stripe_client):
        stripe_client.payment_intents.create.return_value = SimpleNamespace(
            id="pi_1", client_secret="pi_1_secret", status="requires_payment_method", amount=180000
        )

        handle = _authorize(processor)

        params, options = stripe_client.payment_intents.create.call_args.args
        assert params["capture_method"] == "manual"
        assert params["customer"] == "cus_test_renter"
        assert params["payment_method_options"] == {
            "card": {"request_incremental_authorization": "if_available"}
        }
        assert options == {"idempotency_key": "authorize-res_1"}
        assert (handle.handle, handle.client_secret, handle.amount) == (
            "pi_1",
            "pi_1_secret",
            180000,
        )

    def test_card_decline(self, processor, stripe_client):
        stripe_client.payment_intents.create.side_effect = stripe.CardError(
            message="Your card was declined.",
            param="payment_method",
            code="card_declined",
            http_status=402,
        )

        with pytest.raises(PaymentException) as exc_info:
            _authorize(processor)

        assert exc_info.value.reason == "declined"
        assert exc_info.value.message == "Your card was declined."

    def test_invalid_request(self, processor, stripe_client):
        stripe_client.payment_intents.create.side_effect = stripe.InvalidRequestError(
            message="No such customer: 'cus_gone'", param="customer"
        )

        with pytest.raises(PaymentException) as exc_info:
            _authorize(processor)

        assert exc_info.value.reason == "rejected"

    def test_connection_failure_is_timeout(self, processor, stripe_client):
        stripe_client.payment_intents.create.side_effect = stripe.APIConnectionError(
            "Request timed out"
        )

        with pytest.raises(ExternalServiceException) as exc_info:
            _authorize(processor)

        assert exc_info.value.service == "stripe"
        assert exc_info.value.timeout is True

    def test_processor_error(self, processor, stripe_client):
        stripe_client.payment_intents.create.side_effect = stripe.APIError(
            "Internal error", http_status=500
        )

        with pytest.raises(ExternalServiceException) as exc_info:
            _authorize(processor)

        assert exc_info.value.timeout is False

    def test_unconfigured_processor(self, settings):
        with pytest.raises(ExternalServiceException):
            _authorize(StripePaymentProcessor(settings))

    def test_increment_returns_new_amount(self, processor, stripe_client):
        stripe_client.payment_intents.increment_authorization.return_value = SimpleNamespace(
            amount=300000
        )

        amount = processor.increment_authorization(
            "pi_1", 300000, idempotency_key="increment-res_1-4"
        )

        assert amount == 300000
        stripe_client.payment_intents.increment_authorization.assert_called_once_with(
            "pi_1", {"amount": 300000}, {"idempotency_key": "increment-res_1-4"}
        )

    def test_increment_decline(self, processor, stripe_client):
        stripe_client.payment_intents.increment_authorization.side_effect = stripe.CardError(
            message="Your card was declined.", param=None, code="card_declined"
        )

        with pytest.raises(PaymentException) as exc_info:
            processor.increment_authorization("pi_1", 300000, idempotency_key="increment-res_1-4")

        assert exc_info.value.reason == "declined"


class TestCaptureAndVoid:
    def test_capture_reports_charge(self, processor, stripe_client):
        stripe_client.payment_intents.capture.return_value = SimpleNamespace(
            id="pi_1", latest_charge="ch_1", amount_received=90000, status="succeeded"
        )

        result = processor.capture("pi_1", 90000, idempotency_key="capture-res_1")

        assert (result.capture_id, result.amount) == ("ch_1", 90000)
        stripe_client.payment_intents.capture.assert_called_once_with(
            "pi_1", {"amount_to_capture": 90000}, {"idempotency_key": "capture-res_1"}
        )

    def test_rejected_capture(self, processor, stripe_client):
        stripe_client.payment_intents.capture.side_effect = stripe.InvalidRequestError(
            message="This PaymentIntent could not be captured", param=None
        )

        with pytest.raises(PaymentException) as exc_info:
            processor.capture("pi_1", 90000, idempotency_key="capture-res_1")

        assert exc_info.value.reason == "capture_failed"

    def test_void_unreachable(self, processor, stripe_client):
        stripe_client.payment_intents.cancel.side_effect = stripe.APIConnectionError("reset")

        with pytest.raises(ExternalServiceException) as exc_info:
            processor.void("pi_1", idempotency_key="void-res_1")

        assert exc_info.value.timeout is True


class TestCustomer:
    def test_create_customer(self, processor, stripe_client):
        stripe_client.customers.create.return_value = SimpleNamespace(id="cus_new")

        customer_ref = processor.create_customer(
            email="novy@example.com",
            name="Petr Svoboda",
            metadata={"user_id": "user_1"},
            idempotency_key="customer-user_1",
        )

        assert customer_ref == "cus_new"
        stripe_client.customers.create.assert_called_once_with(
            {
                "email": "novy@example.com",
                "metadata": {"user_id": "user_1"},
                "name": "Petr Svoboda",
            },
            {"idempotency_key": "customer-user_1"},
        )

    def test_name_omitted_when_unknown(self, processor, stripe_client):
        stripe_client.customers.create.return_value = SimpleNamespace(id="cus_new")

        processor.create_customer(
            email="novy@example.com",
            name=None,
            metadata={"user_id": "user_1"},
            idempotency_key="customer-user_1",
        )

        params = stripe_client.customers.create.call_args.args[0]
        assert "name" not in params
