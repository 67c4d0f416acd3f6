# trailer_rental/repositories/factory.py
"""
Repository Factory for the trailer rental platform.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

if TYPE_CHECKING:
    from .pin_repository import PinRepository
    from .reservation_repository import ReservationRepository
    from .trailer_repository import TrailerRepository
    from .webhook_event_repository import WebhookEventRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_base_repository(db: Session, model) -> BaseRepository:
        """
        Create a generic base repository for any model.

        Args:
            db: Database session
            model: SQLAlchemy model class

        Returns:
            BaseRepository instance
        """
        return BaseRepository(db, model)

    @staticmethod
    def create_user_repository(db: Session) -> BaseRepository:
        """Users need nothing beyond the generic lookups."""
        from ..models.user import User

        return BaseRepository(db, User)

    @staticmethod
    def create_trailer_repository(db: Session) -> "TrailerRepository":
        from .trailer_repository import TrailerRepository

        return TrailerRepository(db)

    @staticmethod
    def create_reservation_repository(db: Session) -> "ReservationRepository":
        """Create repository for reservation queries and state transitions."""
        from .reservation_repository import ReservationRepository

        return ReservationRepository(db)

    @staticmethod
    def create_pin_repository(db: Session) -> "PinRepository":
        from .pin_repository import PinRepository

        return PinRepository(db)

    @staticmethod
    def create_webhook_event_repository(db: Session) -> "WebhookEventRepository":
        """Create repository for the inbound webhook ledger."""
        from .webhook_event_repository import WebhookEventRepository

        return WebhookEventRepository(db)
