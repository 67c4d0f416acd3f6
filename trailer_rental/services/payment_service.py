# trailer_rental/services/payment_service.py
"""
Payment Coordinator.

Wraps the payment processor with the reservation's money rules:
- the authorization hold covers the quoted price plus a buffer of extra days
- the hold is raised when extensions push the price past it
- capture settles ``total_price`` once, at check-out, only from a capturable hold;
  whatever the hold cannot cover is reported as a shortfall, never dropped
- every processor call carries an idempotency key derived from the reservation id

Amounts on reservations are whole currency units; the processor works in minor units.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import (
    ExternalServiceException,
    NotFoundException,
    PaymentException,
    ValidationException,
)
from ..integrations.payment_processor import (
    CAPTURABLE_STATUS,
    AuthorizationHandle,
    PaymentProcessor,
)
from ..models.reservation import Reservation
from ..models.trailer import Trailer
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

MINOR_UNITS = 100


def to_minor_units(amount: int) -> int:
    return amount * MINOR_UNITS


def from_minor_units(amount: int) -> int:
    return amount // MINOR_UNITS


@dataclass(frozen=True)
class SettlementResult:
    capture_id: str
    captured_amount: int
    invoice_id: Optional[str]
    shortfall: int = 0


class PaymentService(BaseService):
    def __init__(self, db: Session, settings: Settings, processor: PaymentProcessor):
        super().__init__(db, settings)
        self.processor = processor
        self.user_repository = RepositoryFactory.create_user_repository(db)

    def hold_amount(self, reservation: Reservation, trailer: Trailer) -> int:
        """Quoted price plus room for the configured number of extension days."""
        buffer = self.settings.authorization_buffer_days * trailer.price_additional_day
        return reservation.total_price + buffer

    @BaseService.measure_operation("ensure_payment_customer")
    def ensure_customer(self, user_id: str) -> User:
        """
        Give the user a processor-side customer unless they already have one.

        Safe to call repeatedly: an existing reference is returned untouched and
        concurrent first calls share one idempotency key, so the processor
        creates a single customer.

        Raises:
            NotFoundException: unknown user
            PaymentException: the processor rejected the customer
            ExternalServiceException: the processor timed out or was unreachable
        """
        user = self.user_repository.get_by_id(user_id)
        if user is None:
            raise NotFoundException(f"User {user_id} not found", code="USER_NOT_FOUND")
        if user.payment_customer_ref:
            return user
        try:
            customer_ref = self.processor.create_customer(
                email=user.email,
                name=user.full_name,
                metadata={"user_id": user.id},
                idempotency_key=f"customer-{user.id}",
            )
        except (PaymentException, ExternalServiceException):
            prometheus_metrics.record_payment_call("create_customer", "failed")
            raise
        prometheus_metrics.record_payment_call("create_customer", "succeeded")
        with self.transaction():
            self.user_repository.refresh(user)
            if not user.payment_customer_ref:
                user.payment_customer_ref = customer_ref
        self.logger.info(
            "payment_customer_created", extra={"user_id": user.id, "customer_ref": customer_ref}
        )
        return user

    @BaseService.measure_operation("authorize_payment")
    def authorize(
        self, reservation: Reservation, trailer: Trailer, user: User
    ) -> AuthorizationHandle:
        """
        Place an authorization hold for a pending reservation.

        Raises:
            ValidationException: the user has no payment customer on file
            PaymentException: the processor declined the hold
            ExternalServiceException: the processor timed out or was unreachable
        """
        if not user.payment_customer_ref:
            raise ValidationException(
                "User has no payment method on file", code="PAYMENT_CUSTOMER_MISSING"
            )
        amount = self.hold_amount(reservation, trailer)
        try:
            handle = self.processor.create_authorization(
                amount=to_minor_units(amount),
                currency=self.settings.payment_currency,
                customer_ref=user.payment_customer_ref,
                metadata={"reservation_id": reservation.id, "user_id": user.id},
                idempotency_key=f"authorize-{reservation.id}",
            )
        except (PaymentException, ExternalServiceException):
            prometheus_metrics.record_payment_call("authorize", "failed")
            raise
        prometheus_metrics.record_payment_call("authorize", "succeeded")
        self.logger.info(
            "payment_authorized",
            extra={"reservation_id": reservation.id, "handle": handle.handle, "amount": amount},
        )
        return handle

    @BaseService.measure_operation("raise_hold")
    def raise_hold(self, reservation: Reservation, trailer: Trailer) -> Optional[int]:
        """
        Grow the hold back over ``total_price`` plus the extension buffer.

        Returns the new held amount, or None when the hold still covers the
        price or the processor refused; a refusal is logged and the gap is
        reported as a shortfall at settlement.
        """
        held = reservation.authorization_amount
        if not reservation.authorization_id or held is None:
            return None
        if reservation.total_price <= held:
            return None
        target = self.hold_amount(reservation, trailer)
        try:
            authorized = self.processor.increment_authorization(
                reservation.authorization_id,
                to_minor_units(target),
                idempotency_key=f"increment-{reservation.id}-{reservation.extension_count}",
            )
        except (PaymentException, ExternalServiceException) as exc:
            prometheus_metrics.record_payment_call("increment", "failed")
            self.logger.warning(
                "hold_increase_failed",
                extra={
                    "reservation_id": reservation.id,
                    "held": held,
                    "total_price": reservation.total_price,
                    "error": exc.message,
                },
            )
            return None
        prometheus_metrics.record_payment_call("increment", "succeeded")
        self.logger.info(
            "hold_increased",
            extra={"reservation_id": reservation.id, "from": held, "to": target},
        )
        return from_minor_units(authorized)

    @BaseService.measure_operation("settle_payment")
    def settle(
        self, reservation: Reservation, user: User, *, amount: Optional[int] = None
    ) -> SettlementResult:
        """
        Capture ``amount`` (default ``total_price``) from the hold and issue the invoice.

        The hold must be capturable; anything else is ``PaymentException(invalid_state)``.
        The processor cannot capture past the hold, so any excess is captured up
        to the hold and returned as ``shortfall`` for the caller to record.
        Invoice creation after a successful capture is best-effort.
        """
        if not reservation.authorization_id:
            raise PaymentException("invalid_state", "Reservation has no authorization hold")
        status = self.processor.get_authorization_status(reservation.authorization_id)
        if status != CAPTURABLE_STATUS:
            prometheus_metrics.record_payment_call("capture", "invalid_state")
            raise PaymentException(
                "invalid_state",
                "Authorization cannot be captured",
                details={"processor_status": status},
            )

        due = reservation.total_price if amount is None else amount
        held = reservation.authorization_amount
        amount = due
        if held is not None and due > held:
            amount = held
            prometheus_metrics.record_payment_call("capture", "shortfall")
            self.logger.error(
                "capture_shortfall",
                extra={
                    "reservation_id": reservation.id,
                    "due": due,
                    "held": held,
                    "shortfall": due - held,
                },
            )

        try:
            capture = self.processor.capture(
                reservation.authorization_id,
                to_minor_units(amount),
                idempotency_key=f"capture-{reservation.id}",
            )
        except (PaymentException, ExternalServiceException):
            prometheus_metrics.record_payment_call("capture", "failed")
            raise
        prometheus_metrics.record_payment_call("capture", "succeeded")

        invoice_id: Optional[str] = None
        try:
            invoice_id = self.processor.create_invoice(
                customer_ref=user.payment_customer_ref or "",
                handle=reservation.authorization_id,
                amount=to_minor_units(amount),
                currency=self.settings.payment_currency,
                description=f"Pronájem přívěsu, rezervace {reservation.id}",
                idempotency_key=f"invoice-{reservation.id}",
            )
        except (PaymentException, ExternalServiceException) as exc:
            prometheus_metrics.record_payment_call("invoice", "failed")
            self.logger.error(
                "invoice_creation_failed",
                extra={"reservation_id": reservation.id, "error": exc.message},
            )

        return SettlementResult(
            capture_id=capture.capture_id,
            captured_amount=from_minor_units(capture.amount),
            invoice_id=invoice_id,
            shortfall=due - amount,
        )

    def release(self, reservation: Reservation) -> bool:
        """
        Void an uncaptured hold. Returns False when there was nothing to void
        or the processor refused; failures are logged for follow-up.
        """
        if not reservation.authorization_id or reservation.capture_id:
            return False
        try:
            self.processor.void(
                reservation.authorization_id, idempotency_key=f"void-{reservation.id}"
            )
        except (PaymentException, ExternalServiceException) as exc:
            prometheus_metrics.record_payment_call("void", "failed")
            self.logger.error(
                "authorization_void_failed",
                extra={
                    "reservation_id": reservation.id,
                    "handle": reservation.authorization_id,
                    "error": exc.message,
                },
            )
            return False
        prometheus_metrics.record_payment_call("void", "succeeded")
        self.logger.info(
            "authorization_voided",
            extra={"reservation_id": reservation.id, "handle": reservation.authorization_id},
        )
        return True
