"""
Shared fixtures for the trailer rental test-suite.

Every test gets a fresh in-memory SQLite database. External collaborators
(payment processor, lock controller, e-mail) are replaced with in-process
fakes that record what they were asked to do.
"""

from datetime import datetime, timedelta, timezone
import json
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from trailer_rental.core.config import Settings
from trailer_rental.core.exceptions import ExternalServiceException, ValidationException
from trailer_rental.database import Base, build_session_factory
from trailer_rental.integrations.payment_processor import (
    CAPTURABLE_STATUS,
    AuthorizationHandle,
    CaptureResult,
)
import trailer_rental.models  # noqa: F401
from trailer_rental.models.reservation import Reservation, ReservationStatus
from trailer_rental.models.trailer import Trailer
from trailer_rental.models.user import User
from trailer_rental.schemas.webhook import PaymentWebhookEvent, parse_payment_event
from trailer_rental.services.dependencies import build_reservation_service
from trailer_rental.services.notification_service import ConsoleEmailSender
from trailer_rental.services.pricing import PricingTiers, quote

# Far enough ahead that no wall-clock comparison in the services trips over it
RENTAL_START = datetime(2030, 3, 1, 10, 0, tzinfo=timezone.utc)
RENTAL_END = datetime(2030, 3, 3, 10, 0, tzinfo=timezone.utc)


class FakePaymentProcessor:
    """In-memory processor: every call is recorded, failures are injected per call type."""

    source = "test"

    def __init__(self) -> None:
        self.status = CAPTURABLE_STATUS
        self.authorize_error: Optional[Exception] = None
        self.capture_error: Optional[Exception] = None
        self.invoice_error: Optional[Exception] = None
        self.void_error: Optional[Exception] = None
        self.customer_error: Optional[Exception] = None
        self.increment_error: Optional[Exception] = None
        self.authorizations: List[Dict[str, Any]] = []
        self.customers: List[Dict[str, Any]] = []
        self.increments: List[Tuple[str, int, str]] = []
        self.captures: List[Tuple[str, int, str]] = []
        self.voids: List[Tuple[str, str]] = []
        self.invoices: List[Dict[str, Any]] = []

    def create_authorization(
        self,
        *,
        amount: int,
        currency: str,
        customer_ref: str,
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> AuthorizationHandle:
        if self.authorize_error is not None:
            raise self.authorize_error
        handle = f"pi_{metadata['reservation_id']}"
        self.authorizations.append(
            {
                "handle": handle,
                "amount": amount,
                "currency": currency,
                "customer_ref": customer_ref,
                "idempotency_key": idempotency_key,
            }
        )
        return AuthorizationHandle(
            handle=handle,
            client_secret=f"{handle}_secret",
            status="requires_payment_method",
            amount=amount,
        )

    def create_customer(
        self,
        *,
        email: str,
        name: Optional[str],
        metadata: Mapping[str, str],
        idempotency_key: str,
    ) -> str:
        if self.customer_error is not None:
            raise self.customer_error
        self.customers.append({"email": email, "idempotency_key": idempotency_key})
        return f"cus_{metadata['user_id']}"

    def get_authorization_status(self, handle: str) -> str:
        return self.status

    def increment_authorization(self, handle: str, amount: int, *, idempotency_key: str) -> int:
        if self.increment_error is not None:
            raise self.increment_error
        self.increments.append((handle, amount, idempotency_key))
        return amount

    def capture(self, handle: str, amount: int, *, idempotency_key: str) -> CaptureResult:
        if self.capture_error is not None:
            raise self.capture_error
        self.captures.append((handle, amount, idempotency_key))
        return CaptureResult(capture_id=f"ch_{handle}", amount=amount, status="succeeded")

    def void(self, handle: str, *, idempotency_key: str) -> None:
        if self.void_error is not None:
            raise self.void_error
        self.voids.append((handle, idempotency_key))

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
        if self.invoice_error is not None:
            raise self.invoice_error
        self.invoices.append(
            {"handle": handle, "amount": amount, "idempotency_key": idempotency_key}
        )
        return f"in_{handle}"

    def parse_webhook(self, payload: bytes, signature: str) -> Optional[PaymentWebhookEvent]:
        if signature != "valid":
            raise ValidationException("Invalid webhook signature", code="INVALID_SIGNATURE")
        data = json.loads(payload)
        if data.get("type") not in ("authorization_succeeded", "authorization_failed"):
            return None
        return parse_payment_event(data)


class RecordingLockController:
    """Lock controller double; flip ``offline`` to make every call fail."""

    def __init__(self) -> None:
        self.offline = False
        self.grants: List[Tuple[str, str, datetime, datetime]] = []
        self.revocations: List[Tuple[str, str]] = []

    def grant_access(
        self, lock_id: str, code: str, valid_from: datetime, valid_until: datetime
    ) -> None:
        if self.offline:
            raise ExternalServiceException("lock_controller", "Lock controller is offline")
        self.grants.append((lock_id, code, valid_from, valid_until))

    def revoke_access(self, lock_id: str, code: str) -> None:
        if self.offline:
            raise ExternalServiceException("lock_controller", "Lock controller is offline")
        self.revocations.append((lock_id, code))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        database_url="sqlite+pysqlite://",
        stripe_webhook_secret="whsec_test",
        business_timezone="Europe/Prague",
        authorization_buffer_days=3,
        min_return_photos=3,
        lock_revocation_max_attempts=3,
        admin_user_ids=["admin-1"],
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db: Session) -> User:
    user = User(
        email="renter@example.com",
        full_name="Jana Nováková",
        payment_customer_ref="cus_test_renter",
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def other_user(db: Session) -> User:
    user = User(email="other@example.com", payment_customer_ref="cus_test_other")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def trailer(db: Session) -> Trailer:
    trailer = Trailer(
        name="Přívěs Agados 750",
        license_plate="1AB 2345",
        latitude=50.0755,
        longitude=14.4378,
        address="Vinohradská 1, Praha",
        timezone="Europe/Prague",
        price_one_day=500,
        price_two_days=900,
        price_additional_day=300,
        lock_id="lock-001",
    )
    db.add(trailer)
    db.commit()
    return trailer


@pytest.fixture
def make_reservation(db: Session, user: User, trailer: Trailer):
    """Insert a reservation directly, bypassing the booking flow."""

    def _make(
        *,
        start: datetime = RENTAL_START,
        end: datetime = RENTAL_END,
        status: str = ReservationStatus.PENDING_PAYMENT.value,
        user_id: Optional[str] = None,
        authorization_id: Optional[str] = None,
        **extra: Any,
    ) -> Reservation:
        reservation = Reservation(
            user_id=user_id or user.id,
            trailer_id=trailer.id,
            status=status,
            start_date=start,
            end_date=end,
            total_price=quote(PricingTiers.for_trailer(trailer), start, end),
            authorization_id=authorization_id,
            return_photos=[],
            **extra,
        )
        db.add(reservation)
        db.commit()
        return reservation

    return _make


@pytest.fixture
def payment_processor() -> FakePaymentProcessor:
    return FakePaymentProcessor()


@pytest.fixture
def lock_controller() -> RecordingLockController:
    return RecordingLockController()


@pytest.fixture
def email_sender() -> ConsoleEmailSender:
    return ConsoleEmailSender()


@pytest.fixture
def reservation_service(db, settings, payment_processor, lock_controller, email_sender):
    return build_reservation_service(
        db,
        settings,
        processor=payment_processor,
        lock_controller=lock_controller,
        email_sender=email_sender,
    )


@pytest.fixture
def active_reservation(reservation_service, user, trailer) -> Reservation:
    """A reservation taken through create, confirm and check-in."""
    created = reservation_service.create_reservation(
        user_id=user.id, trailer_id=trailer.id, start=RENTAL_START, end=RENTAL_END
    )
    reservation_service.confirm_reservation(created.reservation.id)
    return reservation_service.check_in(
        created.reservation.id, user_id=user.id, now=RENTAL_START + timedelta(hours=1)
    )
