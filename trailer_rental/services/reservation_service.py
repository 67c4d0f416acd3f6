# trailer_rental/services/reservation_service.py
"""
Reservation State Machine.

    pending_payment -> confirmed -> active -> completed
           \\              \\          \\
            +--------------+----------+--> cancelled

Every transition is a compare-and-swap on (status, version), so two callers
acting on the same reservation cannot both win. Confirmation is where trailer
exclusivity is enforced: creation only runs an advisory availability check,
and confirmation re-checks overlaps while bumping the trailer's
``reservation_version`` so racing confirmations on one trailer serialise.

External side effects (lock grants, hold voids, e-mails) run after the owning
transaction commits and never roll it back.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import (
    ConflictException,
    ExternalServiceException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    PaymentException,
    ReservationConflictException,
    StaleStateException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc, local_date, utc_now
from ..core.validators import is_valid_company_tax_id, normalize_company_tax_id
from ..integrations.payment_processor import AuthorizationHandle
from ..models.reservation import Reservation, ReservationStatus
from ..models.trailer import Trailer, TrailerStatus
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .availability_service import AvailabilityService
from .base import BaseService
from .notification_service import NotificationService
from .payment_service import PaymentService, from_minor_units
from .pin_service import PinService, pin_valid_until
from .pricing import PricingTiers, quote

PENDING = ReservationStatus.PENDING_PAYMENT.value
CONFIRMED = ReservationStatus.CONFIRMED.value
ACTIVE = ReservationStatus.ACTIVE.value
COMPLETED = ReservationStatus.COMPLETED.value
CANCELLED = ReservationStatus.CANCELLED.value


class ConfirmationOutcome(str, Enum):
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    CANCELLED_UNAVAILABLE = "cancelled_unavailable"
    HOLD_RELEASED = "hold_released"


@dataclass
class ConfirmationResult:
    outcome: ConfirmationOutcome
    reservation: Reservation


@dataclass
class CreatedReservation:
    reservation: Reservation
    client_secret: Optional[str]


class ReservationService(BaseService):
    def __init__(
        self,
        db: Session,
        settings: Settings,
        *,
        payment_service: PaymentService,
        pin_service: PinService,
        notification_service: NotificationService,
        availability_service: Optional[AvailabilityService] = None,
    ):
        super().__init__(db, settings)
        self.payment_service = payment_service
        self.pin_service = pin_service
        self.notification_service = notification_service
        self.availability_service = availability_service or AvailabilityService(db, settings)
        self.reservation_repository = RepositoryFactory.create_reservation_repository(db)
        self.trailer_repository = RepositoryFactory.create_trailer_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)

    # Lookups

    def get_reservation(self, reservation_id: str, user_id: Optional[str] = None) -> Reservation:
        reservation = self.reservation_repository.get_by_id(reservation_id)
        if reservation is None:
            raise NotFoundException(
                f"Reservation {reservation_id} not found", code="RESERVATION_NOT_FOUND"
            )
        if user_id is not None and reservation.user_id != user_id:
            raise ForbiddenException("Reservation belongs to another user")
        return reservation

    def _get_trailer(self, trailer_id: str) -> Trailer:
        return self.availability_service.get_trailer(trailer_id)

    def _get_user(self, user_id: str) -> User:
        user = self.user_repository.get_by_id(user_id)
        if user is None:
            raise NotFoundException(f"User {user_id} not found", code="USER_NOT_FOUND")
        return user

    def _transition(self, reservation: Reservation, to_status: str, **values) -> Reservation:
        from_status = reservation.status
        self.reservation_repository.transition(
            reservation, expected_status=from_status, status=to_status, **values
        )
        prometheus_metrics.record_transition(from_status, to_status)
        return reservation

    # Creation

    @BaseService.measure_operation("create_reservation")
    def create_reservation(
        self,
        *,
        user_id: str,
        trailer_id: str,
        start: datetime,
        end: datetime,
        company_tax_id: Optional[str] = None,
    ) -> CreatedReservation:
        """
        Create a pending reservation and place its authorization hold.

        Raises:
            ValidationException: malformed interval or company tax id
            NotFoundException: unknown user or trailer
            ReservationConflictException: dates overlap a confirmed/active booking
            PaymentException: authorization failed; the reservation is cancelled
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if start >= end:
            raise ValidationException("Start must be before end", code="INVALID_INTERVAL")
        if company_tax_id:
            if not is_valid_company_tax_id(company_tax_id):
                raise ValidationException(
                    "Invalid company identification number", code="INVALID_COMPANY_TAX_ID"
                )
            company_tax_id = normalize_company_tax_id(company_tax_id)

        user = self._get_user(user_id)
        if not user.payment_customer_ref:
            raise ValidationException(
                "User has no payment method on file", code="PAYMENT_CUSTOMER_MISSING"
            )
        trailer = self._get_trailer(trailer_id)
        if trailer.is_under_maintenance:
            raise ReservationConflictException(trailer.id, "Trailer is under maintenance")
        conflicts = self.availability_service.find_conflicts(trailer.id, start, end)
        if conflicts:
            raise ReservationConflictException(
                trailer.id, details={"conflicting_reservation_ids": [r.id for r in conflicts]}
            )

        with self.transaction():
            reservation = self.reservation_repository.create(
                user_id=user.id,
                trailer_id=trailer.id,
                status=PENDING,
                start_date=start,
                end_date=end,
                total_price=quote(PricingTiers.for_trailer(trailer), start, end),
                company_tax_id=company_tax_id,
                return_photos=[],
            )
        prometheus_metrics.record_transition("new", PENDING)
        self.logger.info(
            "reservation_created",
            extra={
                "reservation_id": reservation.id,
                "trailer_id": trailer.id,
                "total_price": reservation.total_price,
            },
        )

        try:
            handle = self.payment_service.authorize(reservation, trailer, user)
        except PaymentException as exc:
            self._cancel_after_failed_authorization(reservation.id, exc.reason)
            raise
        except ExternalServiceException as exc:
            reason = "timeout" if exc.timeout else "processor_unavailable"
            self._cancel_after_failed_authorization(reservation.id, reason)
            raise PaymentException(
                reason,
                "Payment authorization did not complete",
                details={"reservation_id": reservation.id},
            ) from exc

        reservation = self._record_authorization(reservation.id, handle)
        return CreatedReservation(reservation=reservation, client_secret=handle.client_secret)

    def _cancel_after_failed_authorization(self, reservation_id: str, reason: str) -> None:
        try:
            with self.transaction():
                reservation = self.get_reservation(reservation_id)
                if reservation.status != PENDING:
                    return
                self._transition(
                    reservation,
                    CANCELLED,
                    cancelled_at=utc_now(),
                    cancellation_reason=f"payment_{reason}",
                )
        except StaleStateException:
            self.logger.info(
                "authorization_failure_cancel_lost_race", extra={"reservation_id": reservation_id}
            )

    def _record_authorization(
        self, reservation_id: str, handle: AuthorizationHandle
    ) -> Reservation:
        """
        Store the hold on the reservation.

        A webhook may already have moved the reservation on, so the write is
        retried once against the fresh state. A hold that lands on a reservation
        cancelled in the meantime is voided.
        """
        for _ in range(2):
            try:
                with self.transaction():
                    reservation = self.get_reservation(reservation_id)
                    if reservation.authorization_id is None:
                        self.reservation_repository.transition(
                            reservation,
                            expected_status=reservation.status,
                            authorization_id=handle.handle,
                            authorization_amount=from_minor_units(handle.amount),
                        )
                break
            except StaleStateException:
                continue
        reservation = self.get_reservation(reservation_id)
        if reservation.status == CANCELLED:
            self.payment_service.release(reservation)
        return reservation

    # Confirmation (payment authorization succeeded)

    @BaseService.measure_operation("confirm_reservation")
    def confirm_reservation(
        self, reservation_id: str, *, authorization_id: Optional[str] = None
    ) -> ConfirmationResult:
        """
        Confirm a pending reservation after its hold succeeded.

        Idempotent: a reservation that is already confirmed, active or
        completed is returned unchanged. If the trailer was taken in the
        meantime the reservation is cancelled and its hold released instead.

        Raises:
            NotFoundException: unknown reservation
            ConflictException: the trailer stayed contended for every attempt
        """
        attempts = self.settings.confirmation_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                outcome, reservation, pin_id = self._attempt_confirmation(
                    reservation_id, authorization_id
                )
            except StaleStateException as exc:
                self.logger.info(
                    "confirmation_retry",
                    extra={
                        "reservation_id": reservation_id,
                        "attempt": attempt,
                        "stale": exc.details,
                    },
                )
                continue
            self._after_confirmation(outcome, reservation, pin_id)
            return ConfirmationResult(outcome=outcome, reservation=reservation)

        raise ConflictException(
            "Trailer is being confirmed concurrently, retry later",
            code="CONFIRMATION_CONTENDED",
            details={"reservation_id": reservation_id, "attempts": attempts},
        )

    def _attempt_confirmation(
        self, reservation_id: str, authorization_id: Optional[str]
    ) -> Tuple[ConfirmationOutcome, Reservation, Optional[str]]:
        now = utc_now()
        with self.transaction():
            reservation = self.get_reservation(reservation_id)
            if reservation.status in (CONFIRMED, ACTIVE, COMPLETED):
                return ConfirmationOutcome.ALREADY_CONFIRMED, reservation, None
            if reservation.status == CANCELLED:
                if authorization_id and not reservation.authorization_id:
                    self.reservation_repository.transition(
                        reservation, expected_status=CANCELLED, authorization_id=authorization_id
                    )
                return ConfirmationOutcome.HOLD_RELEASED, reservation, None

            handle_values = {}
            if authorization_id and not reservation.authorization_id:
                handle_values["authorization_id"] = authorization_id

            trailer = self._get_trailer(reservation.trailer_id)
            seen_version = trailer.reservation_version
            conflicts = self.availability_service.find_conflicts(
                trailer.id,
                reservation.start_date,
                reservation.end_date,
                exclude_reservation_id=reservation.id,
            )
            if conflicts or trailer.is_under_maintenance:
                self._transition(
                    reservation,
                    CANCELLED,
                    cancelled_at=now,
                    cancellation_reason="trailer_unavailable",
                    **handle_values,
                )
                self.logger.warning(
                    "confirmation_lost_race",
                    extra={
                        "reservation_id": reservation.id,
                        "trailer_id": trailer.id,
                        "conflicting_reservation_ids": [r.id for r in conflicts],
                    },
                )
                return ConfirmationOutcome.CANCELLED_UNAVAILABLE, reservation, None

            if not self.trailer_repository.claim_reservation_slot(trailer.id, seen_version):
                raise StaleStateException(
                    "Trailer", trailer.id, f"reservation_version={seen_version}"
                )

            self._transition(reservation, CONFIRMED, confirmed_at=now, **handle_values)
            pin = self.pin_service.issue(
                reservation, trailer.lock_id, pin_valid_until(reservation, trailer), now=now
            )
            self.trailer_repository.set_status(trailer.id, TrailerStatus.RESERVED.value)
            return ConfirmationOutcome.CONFIRMED, reservation, pin.id

    def _after_confirmation(
        self, outcome: ConfirmationOutcome, reservation: Reservation, pin_id: Optional[str]
    ) -> None:
        if outcome == ConfirmationOutcome.ALREADY_CONFIRMED:
            self.logger.info("confirmation_noop", extra={"reservation_id": reservation.id})
            return
        if outcome == ConfirmationOutcome.HOLD_RELEASED:
            self.payment_service.release(reservation)
            return

        trailer = self._get_trailer(reservation.trailer_id)
        user = self._get_user(reservation.user_id)
        if outcome == ConfirmationOutcome.CANCELLED_UNAVAILABLE:
            prometheus_metrics.inc_confirmation_conflict()
            self.payment_service.release(reservation)
            self.notification_service.send_reservation_cancelled(reservation, trailer, user)
            return

        if pin_id:
            self.pin_service.push_grant(pin_id)
        self.notification_service.send_reservation_confirmed(reservation, trailer, user)
        self.logger.info(
            "reservation_confirmed",
            extra={"reservation_id": reservation.id, "trailer_id": reservation.trailer_id},
        )

    def fail_authorization(self, reservation_id: str, reason: Optional[str] = None) -> bool:
        """Cancel a pending reservation whose hold failed. Returns False if nothing changed."""
        try:
            with self.transaction():
                reservation = self.get_reservation(reservation_id)
                if reservation.status != PENDING:
                    return False
                self._transition(
                    reservation,
                    CANCELLED,
                    cancelled_at=utc_now(),
                    cancellation_reason=f"payment_failed{': ' + reason if reason else ''}",
                )
        except StaleStateException:
            return False
        return True

    # Renter and admin operations

    @BaseService.measure_operation("cancel_reservation")
    def cancel_reservation(
        self,
        reservation_id: str,
        *,
        user_id: Optional[str] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Reservation:
        """
        Cancel a reservation and release what it holds.

        Renters (``user_id`` given) may cancel only before check-in; an active
        rental ends through check-out. An admin cancelling an active rental
        charges the days elapsed so far from the hold before it is closed.
        Remaining holds are voided and PINs revoked after the cancellation commits.

        Raises:
            InvalidTransitionException: terminal reservation, or a renter
                cancelling an active rental
            PaymentException: the elapsed-days charge failed; the rental stays active
        """
        now = ensure_utc(now) if now else utc_now()
        reservation = self.get_reservation(reservation_id, user_id)
        if reservation.is_terminal or (user_id is not None and reservation.status == ACTIVE):
            raise InvalidTransitionException(reservation.id, reservation.status, "cancel")

        settled: dict = {}
        elapsed = 0
        if reservation.status == ACTIVE:
            trailer = self._get_trailer(reservation.trailer_id)
            elapsed = min(
                quote(PricingTiers.for_trailer(trailer), reservation.start_date, now),
                reservation.total_price,
            )
        if elapsed > 0:
            settlement = self.payment_service.settle(
                reservation, self._get_user(reservation.user_id), amount=elapsed
            )
            settled = {
                "actual_end_date": now,
                "capture_id": settlement.capture_id,
                "captured_amount": settlement.captured_amount,
                "outstanding_amount": settlement.shortfall,
                "invoice_id": settlement.invoice_id,
            }

        try:
            with self.transaction():
                reservation = self.get_reservation(reservation_id)
                if reservation.is_terminal:
                    raise InvalidTransitionException(reservation.id, reservation.status, "cancel")
                self._transition(
                    reservation,
                    CANCELLED,
                    cancelled_at=now,
                    cancellation_reason=reason or "cancelled_by_user",
                    **settled,
                )
                pin_ids = self.pin_service.deactivate_for_reservation(reservation.id, now)
                self.refresh_trailer_status(reservation.trailer_id)
        except (StaleStateException, InvalidTransitionException):
            if settled:
                self.logger.critical(
                    "captured_without_cancellation",
                    extra={"reservation_id": reservation_id, "capture_id": settled["capture_id"]},
                )
            raise

        self.payment_service.release(reservation)
        self._push_revocations(pin_ids)
        self.logger.info(
            "reservation_cancelled",
            extra={
                "reservation_id": reservation.id,
                "captured_amount": settled.get("captured_amount"),
            },
        )
        return reservation

    @BaseService.measure_operation("check_in")
    def check_in(
        self, reservation_id: str, *, user_id: str, now: Optional[datetime] = None
    ) -> Reservation:
        now = ensure_utc(now) if now else utc_now()
        with self.transaction():
            reservation = self.get_reservation(reservation_id, user_id)
            if reservation.status != CONFIRMED:
                raise InvalidTransitionException(reservation.id, reservation.status, "check in")
            window_end = reservation.end_date + timedelta(hours=self.settings.check_in_grace_hours)
            if not reservation.start_date <= now <= window_end:
                raise ValidationException(
                    "Check-in is only possible during the rental window",
                    code="CHECK_IN_WINDOW",
                    details={
                        "start_date": reservation.start_date.isoformat(),
                        "window_end": window_end.isoformat(),
                    },
                )
            self._transition(reservation, ACTIVE, check_in_completed_at=now)
        return reservation

    @BaseService.measure_operation("check_out")
    def check_out(
        self,
        reservation_id: str,
        *,
        user_id: str,
        return_photos: Sequence[str],
        now: Optional[datetime] = None,
    ) -> Reservation:
        """
        Complete an active rental: capture the final price, then close the reservation.

        Raises:
            ValidationException: fewer return photos than required
            PaymentException: the hold is not capturable or capture failed;
                the reservation stays active
        """
        now = ensure_utc(now) if now else utc_now()
        reservation = self.get_reservation(reservation_id, user_id)
        if reservation.status != ACTIVE:
            raise InvalidTransitionException(reservation.id, reservation.status, "check out")
        photos = [photo.strip() for photo in return_photos if photo and photo.strip()]
        if len(photos) < self.settings.min_return_photos:
            raise ValidationException(
                f"At least {self.settings.min_return_photos} return photos are required",
                code="RETURN_PHOTOS_REQUIRED",
                details={"received": len(photos)},
            )

        settlement = self.payment_service.settle(reservation, self._get_user(reservation.user_id))

        try:
            with self.transaction():
                reservation = self.get_reservation(reservation_id)
                self._transition(
                    reservation,
                    COMPLETED,
                    actual_end_date=now,
                    check_out_completed_at=now,
                    capture_id=settlement.capture_id,
                    captured_amount=settlement.captured_amount,
                    outstanding_amount=settlement.shortfall,
                    invoice_id=settlement.invoice_id,
                    return_photos=photos,
                )
                pin_ids = self.pin_service.deactivate_for_reservation(reservation.id, now)
                self.refresh_trailer_status(reservation.trailer_id)
        except StaleStateException:
            self.logger.critical(
                "captured_without_completion",
                extra={"reservation_id": reservation_id, "capture_id": settlement.capture_id},
            )
            raise

        self._push_revocations(pin_ids)
        self.logger.info(
            "reservation_completed",
            extra={
                "reservation_id": reservation.id,
                "captured_amount": settlement.captured_amount,
                "outstanding_amount": settlement.shortfall,
                "invoice_id": settlement.invoice_id,
            },
        )
        return reservation

    @BaseService.measure_operation("extend_reservation")
    def extend_reservation(
        self,
        reservation_id: str,
        *,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
        automatic: bool = False,
    ) -> Reservation:
        """
        Push an active reservation's end by one day and re-issue its PIN.

        The price grows by one additional-day charge; once it outgrows the
        hold, the hold is raised. Renters may extend manually only between the
        current end and the end of the extension window; the scheduled sweep
        passes ``automatic=True``.
        """
        now = ensure_utc(now) if now else utc_now()
        with self.transaction():
            reservation = self.get_reservation(reservation_id, user_id)
            if reservation.status != ACTIVE:
                raise InvalidTransitionException(reservation.id, reservation.status, "extend")
            if not automatic:
                window_end = reservation.end_date + timedelta(
                    hours=self.settings.manual_extension_window_hours
                )
                if not reservation.end_date <= now <= window_end:
                    raise ValidationException(
                        "Rental can only be extended right after its end",
                        code="EXTENSION_WINDOW",
                        details={
                            "end_date": reservation.end_date.isoformat(),
                            "window_end": window_end.isoformat(),
                        },
                    )

            trailer = self._get_trailer(reservation.trailer_id)
            new_end = reservation.end_date + timedelta(days=1)
            values = {
                "end_date": new_end,
                "total_price": reservation.total_price + trailer.price_additional_day,
                "extension_count": reservation.extension_count + 1,
            }
            if automatic:
                values["last_auto_extended_on"] = local_date(now, self.settings.business_timezone)

            overlapping = self.availability_service.find_conflicts(
                trailer.id, reservation.end_date, new_end, exclude_reservation_id=reservation.id
            )
            if overlapping:
                # The trailer has not come back; the extension stands regardless
                self.logger.warning(
                    "extension_overlaps_reservation",
                    extra={
                        "reservation_id": reservation.id,
                        "conflicting_reservation_ids": [r.id for r in overlapping],
                    },
                )

            self.reservation_repository.transition(reservation, expected_status=ACTIVE, **values)
            superseded = self.pin_service.deactivate_for_reservation(reservation.id, now)
            pin = self.pin_service.issue(
                reservation, trailer.lock_id, pin_valid_until(reservation, trailer), now=now
            )
            pin_id = pin.id

        self.pin_service.push_grant(pin_id)
        self._push_revocations(superseded)
        self._cover_extended_price(reservation, trailer)
        self.notification_service.send_pin_changed(
            reservation, trailer, self._get_user(reservation.user_id)
        )
        self.logger.info(
            "reservation_extended",
            extra={
                "reservation_id": reservation.id,
                "end_date": reservation.end_date.isoformat(),
                "total_price": reservation.total_price,
                "automatic": automatic,
            },
        )
        return reservation

    def _cover_extended_price(self, reservation: Reservation, trailer: Trailer) -> None:
        held = self.payment_service.raise_hold(reservation, trailer)
        if held is None:
            return
        try:
            with self.transaction():
                self.reservation_repository.transition(
                    reservation, expected_status=reservation.status, authorization_amount=held
                )
        except StaleStateException:
            self.logger.warning(
                "hold_increase_not_recorded",
                extra={"reservation_id": reservation.id, "authorization_amount": held},
            )

    # Trailer cached status

    def refresh_trailer_status(self, trailer_id: str, *, clear_maintenance: bool = False) -> str:
        """
        Re-derive the cached trailer status from its reservations. No commit.

        Maintenance is left alone unless ``clear_maintenance`` is set.
        """
        trailer = self._get_trailer(trailer_id)
        if trailer.is_under_maintenance and not clear_maintenance:
            return trailer.status
        holding = self.reservation_repository.find_active_by_trailer(trailer_id)
        status = TrailerStatus.RESERVED.value if holding else TrailerStatus.AVAILABLE.value
        if status != trailer.status:
            self.trailer_repository.set_status(trailer_id, status)
        return status

    @BaseService.measure_operation("set_trailer_status")
    def set_trailer_status(self, trailer_id: str, status: str) -> Trailer:
        """Admin tooling: put a trailer into maintenance or take it out again."""
        if status not in (TrailerStatus.MAINTENANCE.value, TrailerStatus.AVAILABLE.value):
            raise ValidationException(
                f"Status {status} cannot be set manually", code="INVALID_TRAILER_STATUS"
            )
        with self.transaction():
            trailer = self._get_trailer(trailer_id)
            if status == TrailerStatus.MAINTENANCE.value:
                self.trailer_repository.set_status(trailer.id, status)
            else:
                self.refresh_trailer_status(trailer.id, clear_maintenance=True)
        self.log_operation("set_trailer_status", trailer_id=trailer_id, status=status)
        return self._get_trailer(trailer_id)

    def _push_revocations(self, pin_ids: List[str]) -> None:
        for pin_id in pin_ids:
            self.pin_service.push_revocation(pin_id)
