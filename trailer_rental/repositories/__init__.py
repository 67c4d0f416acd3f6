"""
Repository layer for the trailer rental platform.

Repositories own every query and conditional update; services own the
transaction boundaries.

Usage:
    from trailer_rental.repositories import RepositoryFactory

    repository = RepositoryFactory.create_reservation_repository(db)
    overlapping = repository.find_overlapping(trailer_id, start, end)
"""

from .base_repository import BaseRepository
from .factory import RepositoryFactory
from .pin_repository import PinRepository
from .reservation_repository import ReservationRepository
from .trailer_repository import TrailerRepository
from .webhook_event_repository import WebhookEventRepository

__all__ = [
    "BaseRepository",
    "PinRepository",
    "RepositoryFactory",
    "ReservationRepository",
    "TrailerRepository",
    "WebhookEventRepository",
]
