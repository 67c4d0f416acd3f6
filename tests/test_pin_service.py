"""Tests for PIN issuance, expiry and lock synchronisation."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from trailer_rental.models.pin import LockSyncStatus, Pin
from trailer_rental.models.reservation import ReservationStatus
from trailer_rental.services.expiry_service import ExpirySweeper
from trailer_rental.services.pin_service import PinService, generate_pin_code, pin_valid_until

NOW = datetime(2030, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def pin_service(db, settings, lock_controller):
    return PinService(db, settings, lock_controller)


@pytest.fixture
def confirmed_reservation(make_reservation):
    return make_reservation(status=ReservationStatus.CONFIRMED.value)


def _pins(db, reservation_id):
    return db.query(Pin).filter(Pin.reservation_id == reservation_id).all()


class TestPinValidity:
    def test_winter_end_date_expires_at_local_midnight(self):
        reservation = SimpleNamespace(end_date=datetime(2024, 1, 10, 15, 0, tzinfo=timezone.utc))
        trailer = SimpleNamespace(timezone="Europe/Prague")

        valid_until = pin_valid_until(reservation, trailer)

        # 2024-01-11T00:00 in Prague (UTC+1)
        assert valid_until == datetime(2024, 1, 10, 23, 0, tzinfo=timezone.utc)

    def test_summer_end_date_uses_dst_offset(self):
        reservation = SimpleNamespace(end_date=datetime(2024, 7, 10, 9, 30, tzinfo=timezone.utc))
        trailer = SimpleNamespace(timezone="Europe/Prague")

        assert pin_valid_until(reservation, trailer) == datetime(
            2024, 7, 10, 22, 0, tzinfo=timezone.utc
        )

    def test_late_evening_utc_is_next_local_day(self):
        # 23:30 UTC on the 10th is already the 11th in Prague
        reservation = SimpleNamespace(end_date=datetime(2024, 1, 10, 23, 30, tzinfo=timezone.utc))
        trailer = SimpleNamespace(timezone="Europe/Prague")

        assert pin_valid_until(reservation, trailer) == datetime(
            2024, 1, 11, 23, 0, tzinfo=timezone.utc
        )

    def test_codes_are_four_digits(self):
        for _ in range(200):
            code = generate_pin_code()
            assert len(code) == 4
            assert 1000 <= int(code) <= 9999


class TestIssue:
    def test_reissue_leaves_single_active_pin(self, pin_service, confirmed_reservation, db):
        valid_until = NOW + timedelta(days=1)
        first = pin_service.issue(confirmed_reservation, "lock-001", valid_until, now=NOW)
        db.commit()
        second = pin_service.issue(confirmed_reservation, "lock-001", valid_until, now=NOW)
        db.commit()

        active = [pin for pin in _pins(db, confirmed_reservation.id) if pin.is_active]
        assert [pin.id for pin in active] == [second.id]
        db.refresh(first)
        assert first.is_active is False
        assert first.revocation_status == LockSyncStatus.PENDING.value
        assert confirmed_reservation.pin_code == second.code
        assert confirmed_reservation.pin_expiry == valid_until

    def test_push_grant_records_acknowledgement(
        self, pin_service, confirmed_reservation, lock_controller, db
    ):
        pin = pin_service.issue(confirmed_reservation, "lock-001", NOW + timedelta(days=1), now=NOW)
        db.commit()

        assert pin_service.push_grant(pin.id) is True

        assert pin.grant_status == LockSyncStatus.ACKNOWLEDGED.value
        assert lock_controller.grants == [("lock-001", pin.code, NOW, NOW + timedelta(days=1))]


class TestExpirySweep:
    def test_expired_pin_deactivated_once(self, pin_service, confirmed_reservation, db):
        pin = pin_service.issue(confirmed_reservation, "lock-001", NOW - timedelta(hours=1))
        db.commit()

        assert pin_service.expire_sweep(NOW) == 1
        assert pin_service.expire_sweep(NOW) == 0

        db.refresh(pin)
        assert pin.is_active is False
        assert pin.deactivated_at == NOW

    def test_valid_pin_untouched(self, pin_service, confirmed_reservation, db):
        pin = pin_service.issue(confirmed_reservation, "lock-001", NOW + timedelta(hours=1))
        db.commit()

        assert pin_service.expire_sweep(NOW) == 0
        db.refresh(pin)
        assert pin.is_active is True

    def test_sweeper_revokes_expired_pins(
        self, db, settings, pin_service, confirmed_reservation, lock_controller
    ):
        pin = pin_service.issue(confirmed_reservation, "lock-001", NOW - timedelta(hours=1))
        db.commit()
        sweeper = ExpirySweeper(db, settings, pin_service)

        first = sweeper.run(NOW)
        second = sweeper.run(NOW)

        assert (first.deactivated, first.revoked, first.revocation_failures) == (1, 1, 0)
        assert (second.deactivated, second.revoked, second.revocation_failures) == (0, 0, 0)
        assert lock_controller.revocations == [("lock-001", pin.code)]


class TestRevocationRetry:
    def test_failed_revocation_is_retried_by_next_sweep(
        self, pin_service, confirmed_reservation, lock_controller, db
    ):
        pin = pin_service.issue(confirmed_reservation, "lock-001", NOW - timedelta(hours=1))
        db.commit()
        pin_service.expire_sweep(NOW)
        lock_controller.offline = True

        assert pin_service.retry_pending_revocations() == (0, 1)
        db.refresh(pin)
        assert pin.revocation_attempts == 1
        assert pin.revocation_status == LockSyncStatus.PENDING.value
        # The system of record does not wait for the lock
        assert pin.is_active is False

        lock_controller.offline = False
        assert pin_service.retry_pending_revocations() == (1, 0)
        db.refresh(pin)
        assert pin.revocation_status == LockSyncStatus.ACKNOWLEDGED.value
        assert pin.revoked_at is not None

    def test_revocation_gives_up_after_max_attempts(
        self, pin_service, confirmed_reservation, lock_controller, settings, db
    ):
        pin = pin_service.issue(confirmed_reservation, "lock-001", NOW - timedelta(hours=1))
        db.commit()
        pin_service.expire_sweep(NOW)
        lock_controller.offline = True

        for _ in range(settings.lock_revocation_max_attempts):
            pin_service.retry_pending_revocations()

        db.refresh(pin)
        assert pin.revocation_status == LockSyncStatus.FAILED.value
        assert pin.revocation_attempts == settings.lock_revocation_max_attempts
        assert pin_service.retry_pending_revocations() == (0, 0)


class TestGrantRetry:
    def test_failed_grant_is_pushed_by_next_sweep(
        self, db, settings, pin_service, confirmed_reservation, lock_controller
    ):
        pin = pin_service.issue(confirmed_reservation, "lock-001", NOW + timedelta(days=1), now=NOW)
        db.commit()
        lock_controller.offline = True
        assert pin_service.push_grant(pin.id) is False
        assert pin.grant_status == LockSyncStatus.FAILED.value
        assert pin.last_lock_error == "Lock controller is offline"

        lock_controller.offline = False
        result = ExpirySweeper(db, settings, pin_service).run(NOW)

        assert (result.granted, result.grant_failures) == (1, 0)
        db.refresh(pin)
        assert pin.grant_status == LockSyncStatus.ACKNOWLEDGED.value
        assert lock_controller.grants == [("lock-001", pin.code, NOW, NOW + timedelta(days=1))]

    def test_grant_stays_pending_while_lock_offline(
        self, pin_service, confirmed_reservation, lock_controller, db
    ):
        pin = pin_service.issue(confirmed_reservation, "lock-001", NOW + timedelta(days=1), now=NOW)
        db.commit()
        lock_controller.offline = True

        assert pin_service.retry_pending_grants(NOW) == (0, 1)
        assert pin_service.retry_pending_grants(NOW) == (0, 1)
        db.refresh(pin)
        assert pin.grant_status == LockSyncStatus.FAILED.value
        assert pin.is_active is True

    def test_superseded_and_acknowledged_pins_not_regranted(
        self, pin_service, confirmed_reservation, lock_controller, db
    ):
        pin_service.issue(confirmed_reservation, "lock-001", NOW + timedelta(days=1), now=NOW)
        db.commit()
        current = pin_service.issue(
            confirmed_reservation, "lock-001", NOW + timedelta(days=1), now=NOW
        )
        db.commit()
        pin_service.push_grant(current.id)
        lock_controller.grants.clear()

        assert pin_service.retry_pending_grants(NOW) == (0, 0)
        assert lock_controller.grants == []

    def test_expired_pin_not_regranted(
        self, pin_service, confirmed_reservation, lock_controller, db
    ):
        pin_service.issue(confirmed_reservation, "lock-001", NOW + timedelta(hours=1), now=NOW)
        db.commit()

        assert pin_service.retry_pending_grants(NOW + timedelta(hours=2)) == (0, 0)
        assert lock_controller.grants == []
