"""
Payment processor boundary.

``PaymentProcessor`` is the interface the reservation core talks to;
``StripePaymentProcessor`` implements it with manual-capture PaymentIntents.
Amounts cross this boundary in minor units (haléře for CZK).

Failures are translated at this seam:
- card declines and invalid requests become ``PaymentException``
- network failures and timeouts become ``ExternalServiceException``
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Dict, Mapping, Optional, Protocol

from pydantic import ValidationError
import stripe

from ..core.config import Settings
from ..core.exceptions import ExternalServiceException, PaymentException, ValidationException
from ..schemas.webhook import PaymentWebhookEvent, parse_payment_event

logger = logging.getLogger(__name__)

CAPTURABLE_STATUS = "requires_capture"

# Processor event types and the closed set of outcomes they map onto
STRIPE_EVENT_OUTCOMES: Dict[str, str] = {
    "payment_intent.amount_capturable_updated": "authorization_succeeded",
    "payment_intent.succeeded": "authorization_succeeded",
    "payment_intent.payment_failed": "authorization_failed",
    "payment_intent.canceled": "authorization_failed",
}


@dataclass(frozen=True)
class AuthorizationHandle:
    handle: str
    client_secret: Optional[str]
    status: str
    amount: int


@dataclass(frozen=True)
class CaptureResult:
    capture_id: str
    amount: int
    status: str


class PaymentProcessor(Protocol):
    def create_authorization(
        self,
        *,
        amount: int,
        currency: str,
        customer_ref: str,
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> AuthorizationHandle: ...

    def create_customer(
        self,
        *,
        email: str,
        name: Optional[str],
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> str: ...

    def get_authorization_status(self, handle: str) -> str: ...

    def increment_authorization(
        self, handle: str, amount: int, *, idempotency_key: str
    ) -> int: ...

    def capture(self, handle: str, amount: int, *, idempotency_key: str) -> CaptureResult: ...

    def void(self, handle: str, *, idempotency_key: str) -> None: ...

    def create_invoice(
        self,
        *,
        customer_ref: str,
        handle: str,
        amount: int,
        currency: str,
        description: str,
        idempotency_key: str,
    ) -> str: ...

    def parse_webhook(self, payload: bytes, signature: str) -> Optional[PaymentWebhookEvent]: ...


class StripePaymentProcessor:
    """Stripe-backed processor. Holds its own client so no global ``stripe.api_key`` is set."""

    source = "stripe"

    def __init__(self, settings: Settings, client: Optional[stripe.StripeClient] = None):
        self._settings = settings
        self._webhook_secret = settings.stripe_webhook_secret.get_secret_value()
        self._client = client
        if self._client is None:
            api_key = settings.stripe_secret_key.get_secret_value()
            if api_key:
                # Bounded timeout: a hung authorization is treated as a failure
                self._client = stripe.StripeClient(
                    api_key,
                    http_client=stripe.RequestsClient(timeout=settings.payment_timeout_seconds),
                    max_network_retries=settings.payment_max_network_retries,
                )
            else:
                logger.warning("Stripe secret key not configured - payment calls will fail")

    def _require_client(self) -> stripe.StripeClient:
        if self._client is None:
            raise ExternalServiceException("stripe", "Payment processor is not configured")
        return self._client

    def _translate(self, operation: str, exc: stripe.StripeError) -> Exception:
        if isinstance(exc, stripe.CardError):
            logger.info(
                "stripe_card_declined",
                extra={"operation": operation, "code": getattr(exc, "code", None)},
            )
            return PaymentException("declined", exc.user_message or "Card was declined")
        if isinstance(exc, stripe.InvalidRequestError):
            logger.warning(
                "stripe_invalid_request", extra={"operation": operation, "error": str(exc)}
            )
            return PaymentException("rejected", f"Payment processor rejected {operation}")
        if isinstance(exc, stripe.APIConnectionError):
            logger.error("stripe_unreachable", extra={"operation": operation, "error": str(exc)})
            return ExternalServiceException(
                "stripe", f"Payment processor did not respond to {operation}", timeout=True
            )
        logger.error("stripe_error", extra={"operation": operation, "error": str(exc)})
        return ExternalServiceException("stripe", f"Payment processor failed during {operation}")

    def create_authorization(
        self,
        *,
        amount: int,
        currency: str,
        customer_ref: str,
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> AuthorizationHandle:
        client = self._require_client()
        try:
            intent = client.payment_intents.create(
                {
                    "amount": amount,
                    "currency": currency,
                    "customer": customer_ref,
                    "capture_method": "manual",
                    "payment_method_types": ["card"],
                    "payment_method_options": {
                        "card": {"request_incremental_authorization": "if_available"}
                    },
                    "metadata": dict(metadata),
                },
                {"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as exc:
            raise self._translate("create_authorization", exc) from exc
        return AuthorizationHandle(
            handle=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
            amount=intent.amount,
        )

    def get_authorization_status(self, handle: str) -> str:
        client = self._require_client()
        try:
            intent = client.payment_intents.retrieve(handle)
        except stripe.StripeError as exc:
            raise self._translate("retrieve_authorization", exc) from exc
        return str(intent.status)

    def create_customer(
        self,
        *,
        email: str,
        name: Optional[str],
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> str:
        client = self._require_client()
        params: Dict[str, Any] = {"email": email, "metadata": dict(metadata)}
        if name:
            params["name"] = name
        try:
            customer = client.customers.create(params, {"idempotency_key": idempotency_key})
        except stripe.StripeError as exc:
            raise self._translate("create_customer", exc) from exc
        return str(customer.id)

    def increment_authorization(self, handle: str, amount: int, *, idempotency_key: str) -> int:
        """Raise the hold to ``amount``; returns the amount now authorized."""
        client = self._require_client()
        try:
            intent = client.payment_intents.increment_authorization(
                handle, {"amount": amount}, {"idempotency_key": idempotency_key}
            )
        except stripe.StripeError as exc:
            raise self._translate("increment_authorization", exc) from exc
        return int(intent.amount)

    def capture(self, handle: str, amount: int, *, idempotency_key: str) -> CaptureResult:
        client = self._require_client()
        try:
            intent = client.payment_intents.capture(
                handle,
                {"amount_to_capture": amount},
                {"idempotency_key": idempotency_key},
            )
        except stripe.InvalidRequestError as exc:
            logger.warning("stripe_capture_rejected", extra={"handle": handle, "error": str(exc)})
            raise PaymentException("capture_failed", "Payment processor rejected capture") from exc
        except stripe.StripeError as exc:
            raise self._translate("capture", exc) from exc
        return CaptureResult(
            capture_id=intent.latest_charge or intent.id,
            amount=intent.amount_received,
            status=intent.status,
        )

    def void(self, handle: str, *, idempotency_key: str) -> None:
        client = self._require_client()
        try:
            client.payment_intents.cancel(handle, {}, {"idempotency_key": idempotency_key})
        except stripe.StripeError as exc:
            raise self._translate("void", exc) from exc

    def create_invoice(
        self,
        *,
        customer_ref: str,
        handle: str,
        amount: int,
        currency: str,
        description: str,
        idempotency_key: str,
    ) -> str:
        client = self._require_client()
        metadata = {"payment_intent": handle}
        try:
            client.invoice_items.create(
                {
                    "customer": customer_ref,
                    "amount": amount,
                    "currency": currency,
                    "description": description,
                    "metadata": metadata,
                },
                {"idempotency_key": f"{idempotency_key}-item"},
            )
            invoice = client.invoices.create(
                {
                    "customer": customer_ref,
                    "auto_advance": True,
                    "pending_invoice_items_behavior": "include",
                    "metadata": metadata,
                },
                {"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as exc:
            raise self._translate("create_invoice", exc) from exc
        return str(invoice.id)

    def parse_webhook(self, payload: bytes, signature: str) -> Optional[PaymentWebhookEvent]:
        """
        Verify the signature and map the event onto the closed webhook union.

        Returns None for verified events of types the reservation core does not
        consume.

        Raises:
            ValidationException: bad signature or malformed payload
        """
        if not self._webhook_secret:
            raise ExternalServiceException("stripe", "Webhook secret not configured")
        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as exc:
            logger.warning(f"Invalid webhook signature: {str(exc)}")
            raise ValidationException(
                "Invalid webhook signature", code="INVALID_SIGNATURE"
            ) from exc
        except ValueError as exc:
            raise ValidationException("Invalid webhook payload", code="INVALID_PAYLOAD") from exc

        raw: Dict[str, Any] = json.loads(payload)
        outcome = STRIPE_EVENT_OUTCOMES.get(raw.get("type", ""))
        if outcome is None:
            logger.debug("stripe_event_ignored", extra={"event_type": raw.get("type")})
            return None

        intent = raw.get("data", {}).get("object", {}) or {}
        metadata = intent.get("metadata") or {}
        last_error = intent.get("last_payment_error") or {}
        try:
            return parse_payment_event(
                {
                    "type": outcome,
                    "event_id": raw["id"],
                    "source_type": raw["type"],
                    "handle": intent["id"],
                    "reservation_id": metadata.get("reservation_id"),
                    "amount_capturable": intent.get("amount_capturable"),
                    "failure_reason": last_error.get("code") or last_error.get("message"),
                }
            )
        except (KeyError, ValidationError) as exc:
            raise ValidationException("Malformed payment event", code="INVALID_PAYLOAD") from exc
