# trailer_rental/models/trailer.py
"""
Trailer model.

The ``status`` column is a cached projection for map/list screens and admin
tooling. Authoritative availability is always computed from reservations.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.timezone_utils import utc_now
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime


class TrailerStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"


class Trailer(Base):
    __tablename__ = "trailers"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    license_plate: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Location
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Europe/Prague")

    # Pricing tiers, whole currency units
    price_one_day: Mapped[int] = mapped_column(Integer, nullable=False)
    price_two_days: Mapped[int] = mapped_column(Integer, nullable=False)
    price_additional_day: Mapped[int] = mapped_column(Integer, nullable=False)

    lock_id: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TrailerStatus.AVAILABLE.value
    )
    # Bumped on every confirmation so racing confirmations serialise per trailer.
    reservation_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('available', 'reserved', 'maintenance')", name="ck_trailers_status"
        ),
        CheckConstraint(
            "price_one_day >= 0 AND price_two_days >= 0 AND price_additional_day >= 0",
            name="ck_trailers_prices_non_negative",
        ),
    )

    @property
    def is_under_maintenance(self) -> bool:
        return self.status == TrailerStatus.MAINTENANCE.value

    def __repr__(self) -> str:
        return f"<Trailer {self.id}: {self.name}, status={self.status}>"
