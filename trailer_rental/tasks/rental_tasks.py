# trailer_rental/tasks/rental_tasks.py
"""
Scheduled reservation sweeps.

Both tasks are safe to re-run: the extension sweep skips reservations already
extended on the current local day, and the PIN sweep only touches PINs that
are still active.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from trailer_rental.core.config import get_settings
from trailer_rental.database import get_session_factory
from trailer_rental.integrations.lock_controller import build_lock_controller
from trailer_rental.integrations.payment_processor import StripePaymentProcessor
from trailer_rental.services.dependencies import (
    build_auto_extension_service,
    build_expiry_sweeper,
)
from trailer_rental.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(  # type: ignore[misc]
    bind=True, max_retries=3, name="trailer_rental.tasks.rental_tasks.auto_extend_rentals"
)
def auto_extend_rentals(self: Any) -> Dict[str, Any]:
    """
    Extend every active rental that reaches its end within the lookahead.

    Per-reservation failures are reported in the result; only a failure of the
    sweep itself (e.g. the database being unreachable) triggers a retry.
    """
    settings = get_settings()
    db: Session = get_session_factory()()
    try:
        service = build_auto_extension_service(
            db,
            settings,
            processor=StripePaymentProcessor(settings),
            lock_controller=build_lock_controller(settings),
        )
        result = service.run()
        if result.errors:
            logger.warning(f"Auto-extension completed with {len(result.errors)} failures")
        return {**result.as_dict(), "processed_at": datetime.now(timezone.utc).isoformat()}
    except Exception as exc:
        logger.error(f"Auto-extension job failed: {exc}")
        raise self.retry(exc=exc, countdown=300)
    finally:
        db.close()


@celery_app.task(  # type: ignore[misc]
    bind=True, max_retries=3, name="trailer_rental.tasks.rental_tasks.cleanup_expired_pins"
)
def cleanup_expired_pins(self: Any) -> Dict[str, Any]:
    """Deactivate expired PINs and retry outstanding lock revocations and grants."""
    settings = get_settings()
    db: Session = get_session_factory()()
    try:
        sweeper = build_expiry_sweeper(
            db, settings, lock_controller=build_lock_controller(settings)
        )
        result = sweeper.run()
        return {
            "deactivated": result.deactivated,
            "revoked": result.revoked,
            "revocation_failures": result.revocation_failures,
            "granted": result.granted,
            "grant_failures": result.grant_failures,
            "processed_at": datetime.now(timezone.utc).isoformat(),
        }
    except Exception as exc:
        logger.error(f"PIN cleanup job failed: {exc}")
        raise self.retry(exc=exc, countdown=120)
    finally:
        db.close()
