"""Trailer Repository."""

from sqlalchemy.orm import Session

from ..core.timezone_utils import utc_now
from ..models.trailer import Trailer
from .base_repository import BaseRepository


class TrailerRepository(BaseRepository[Trailer]):
    def __init__(self, db: Session):
        super().__init__(db, Trailer)

    def claim_reservation_slot(self, trailer_id: str, seen_version: int) -> bool:
        """
        Bump ``reservation_version`` if nobody else has since ``seen_version`` was read.

        Confirmations on the same trailer call this before committing, so at most
        one of two racing confirmations can succeed against the same snapshot.
        """
        affected = self._conditional_update(
            Trailer.id == trailer_id,
            Trailer.reservation_version == seen_version,
            reservation_version=seen_version + 1,
        )
        return affected == 1

    def set_status(self, trailer_id: str, status: str) -> None:
        """Overwrite the cached status (last write wins)."""
        self._conditional_update(Trailer.id == trailer_id, status=status, updated_at=utc_now())
