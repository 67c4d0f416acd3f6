"""ORM models. Importing this package registers every table on ``Base.metadata``."""

from .pin import LockSyncStatus, Pin
from .reservation import BLOCKING_STATUSES, TERMINAL_STATUSES, Reservation, ReservationStatus
from .trailer import Trailer, TrailerStatus
from .user import User
from .webhook_event import WebhookEvent

__all__ = [
    "BLOCKING_STATUSES",
    "LockSyncStatus",
    "Pin",
    "Reservation",
    "ReservationStatus",
    "TERMINAL_STATUSES",
    "Trailer",
    "TrailerStatus",
    "User",
    "WebhookEvent",
]
