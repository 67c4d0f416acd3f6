"""User model: the renter identity as seen by the reservation core."""

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.timezone_utils import utc_now
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime


class User(Base):
    """
    Renter known to the platform.

    Authentication lives with the external identity provider; this row only
    keeps what reservations need: a stable id, a contact address and the
    payment processor's customer reference.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_ulid)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_customer_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email}>"
