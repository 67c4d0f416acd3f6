"""Tests for the auto-extension scheduler."""

from datetime import datetime, timedelta, timezone

import pytest

from trailer_rental.core.exceptions import DomainException
from trailer_rental.models.pin import Pin
from trailer_rental.models.reservation import ReservationStatus
from trailer_rental.services.extension_service import AutoExtensionService

# Just after local midnight in Prague
SWEEP_AT = datetime(2030, 3, 10, 23, 5, tzinfo=timezone.utc)


@pytest.fixture
def extension_service(db, settings, reservation_service):
    return AutoExtensionService(db, settings, reservation_service)


@pytest.fixture
def overdue_reservation(make_reservation):
    """Active rental whose end date was yesterday."""
    return make_reservation(
        status=ReservationStatus.ACTIVE.value,
        start=SWEEP_AT - timedelta(days=3),
        end=SWEEP_AT - timedelta(days=1),
        authorization_id="pi_overdue",
    )


class TestAutoExtension:
    def test_extends_by_exactly_one_day(self, extension_service, overdue_reservation, db):
        original_end = overdue_reservation.end_date
        original_price = overdue_reservation.total_price

        result = extension_service.run(SWEEP_AT)

        assert result.extended == [overdue_reservation.id]
        db.refresh(overdue_reservation)
        assert overdue_reservation.end_date == original_end + timedelta(days=1)
        assert overdue_reservation.total_price == original_price + 300
        assert overdue_reservation.extension_count == 1
        assert overdue_reservation.last_auto_extended_on == datetime(2030, 3, 11).date()

    def test_issues_new_pin(self, extension_service, overdue_reservation, lock_controller, db):
        extension_service.run(SWEEP_AT)

        pins = db.query(Pin).filter(Pin.reservation_id == overdue_reservation.id).all()
        assert len(pins) == 1
        assert pins[0].is_active is True
        db.refresh(overdue_reservation)
        assert overdue_reservation.pin_code == pins[0].code
        # End date moved to 2030-03-10 23:05Z, i.e. 2030-03-11 local; valid until its midnight
        assert pins[0].valid_until == datetime(2030, 3, 11, 23, 0, tzinfo=timezone.utc)
        assert len(lock_controller.grants) == 1

    def test_rerun_same_day_is_noop(self, extension_service, overdue_reservation, db):
        extension_service.run(SWEEP_AT)

        second = extension_service.run(SWEEP_AT + timedelta(hours=1))

        assert second.extended == []
        assert second.skipped == [overdue_reservation.id]
        db.refresh(overdue_reservation)
        assert overdue_reservation.extension_count == 1

    def test_not_yet_due_reservation_untouched(self, extension_service, make_reservation):
        make_reservation(
            status=ReservationStatus.ACTIVE.value,
            start=SWEEP_AT,
            end=SWEEP_AT + timedelta(days=3),
        )

        result = extension_service.run(SWEEP_AT)

        assert result.extended == []

    def test_confirmed_reservations_are_not_extended(self, extension_service, make_reservation):
        make_reservation(
            status=ReservationStatus.CONFIRMED.value,
            start=SWEEP_AT - timedelta(days=2),
            end=SWEEP_AT - timedelta(hours=1),
        )

        assert extension_service.run(SWEEP_AT).extended == []

    def test_partial_failure_continues_batch(
        self, extension_service, make_reservation, monkeypatch, db
    ):
        failing = make_reservation(
            status=ReservationStatus.ACTIVE.value,
            start=SWEEP_AT - timedelta(days=3),
            end=SWEEP_AT - timedelta(days=2),
        )
        healthy = make_reservation(
            status=ReservationStatus.ACTIVE.value,
            start=SWEEP_AT - timedelta(days=2),
            end=SWEEP_AT - timedelta(hours=2),
        )
        original_extend = extension_service.reservation_service.extend_reservation

        def _extend(reservation_id, **kwargs):
            if reservation_id == failing.id:
                raise DomainException("lock backend exploded")
            return original_extend(reservation_id, **kwargs)

        monkeypatch.setattr(extension_service.reservation_service, "extend_reservation", _extend)

        result = extension_service.run(SWEEP_AT)

        assert result.extended == [healthy.id]
        assert list(result.errors) == [failing.id]
        assert result.as_dict()["failed"] == 1
        db.refresh(healthy)
        assert healthy.extension_count == 1
