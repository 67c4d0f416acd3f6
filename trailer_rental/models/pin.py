"""
Access PIN model.

``is_active`` records whether the system of record honours the code. It only
ever moves from True to False. Whether the physical lock has been told is
tracked separately in ``grant_status`` and ``revocation_status`` so a failed
lock call never rolls back the system of record.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.timezone_utils import utc_now
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime


class LockSyncStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    FAILED = "failed"


class Pin(Base):
    __tablename__ = "pins"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    reservation_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("reservations.id"), nullable=False
    )
    lock_id: Mapped[str] = mapped_column(String(128), nullable=False)
    code: Mapped[str] = mapped_column(String(8), nullable=False)

    valid_from: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    valid_until: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    grant_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LockSyncStatus.PENDING.value
    )
    revocation_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LockSyncStatus.NOT_REQUIRED.value
    )
    revocation_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_lock_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)

    __table_args__ = (
        # At most one active PIN per reservation.
        Index(
            "uq_pins_active_per_reservation",
            "reservation_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        Index("ix_pins_active_valid_until", "is_active", "valid_until"),
        Index("ix_pins_revocation_status", "revocation_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Pin {self.id}: reservation={self.reservation_id}, "
            f"until={self.valid_until}, active={self.is_active}>"
        )
