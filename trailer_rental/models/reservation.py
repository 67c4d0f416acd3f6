# trailer_rental/models/reservation.py
"""
Reservation model.

A reservation is created in ``pending_payment`` and only ever mutated through
the reservation state machine, which writes each transition as a conditional
update guarded by ``status`` and ``version``. Rows are never deleted;
cancellation is a terminal status kept as history.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..core.timezone_utils import utc_now
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime


class ReservationStatus(str, Enum):
    """Reservation lifecycle statuses."""

    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that hold the physical trailer and therefore block other bookings.
BLOCKING_STATUSES = (ReservationStatus.CONFIRMED.value, ReservationStatus.ACTIVE.value)
TERMINAL_STATUSES = (ReservationStatus.COMPLETED.value, ReservationStatus.CANCELLED.value)


class Reservation(Base):
    __tablename__ = "reservations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    trailer_id: Mapped[str] = mapped_column(String(26), ForeignKey("trailers.id"), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReservationStatus.PENDING_PAYMENT.value
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Rental window; end moves forward on extension
    start_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    actual_end_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    total_price: Mapped[int] = mapped_column(Integer, nullable=False)
    company_tax_id: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # Mirror of the current active PIN
    pin_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    pin_expiry: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Payment: the hold is placed once and may be raised on extension; capture once
    authorization_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    authorization_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    capture_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    captured_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Part of the final price the hold could not cover, left for collection
    outstanding_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invoice_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Lifecycle timestamps
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    check_in_completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    check_out_completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Extension bookkeeping
    extension_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_auto_extended_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    return_photos: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending_payment', 'confirmed', 'active', 'completed', 'cancelled')",
            name="ck_reservations_status",
        ),
        CheckConstraint("start_date < end_date", name="ck_reservations_interval"),
        CheckConstraint("total_price >= 0", name="ck_reservations_price_non_negative"),
        Index("ix_reservations_trailer_status", "trailer_id", "status"),
        Index("ix_reservations_status_end", "status", "end_date"),
        Index("ix_reservations_user", "user_id"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "trailer_id": self.trailer_id,
            "status": self.status,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "total_price": self.total_price,
            "pin_code": self.pin_code,
            "pin_expiry": self.pin_expiry.isoformat() if self.pin_expiry else None,
        }

    def __repr__(self) -> str:
        return (
            f"<Reservation {self.id}: trailer={self.trailer_id}, "
            f"{self.start_date}..{self.end_date}, status={self.status}, v={self.version}>"
        )
