"""
Celery Beat schedule.

Crontab hours are interpreted in the Celery app's time zone, which is the
business time zone.
"""

from typing import Any

from celery.schedules import crontab

from trailer_rental.core.config import Settings

AUTO_EXTEND_TASK = "trailer_rental.tasks.rental_tasks.auto_extend_rentals"
CLEANUP_PINS_TASK = "trailer_rental.tasks.rental_tasks.cleanup_expired_pins"


def get_beat_schedule(settings: Settings) -> dict[str, dict[str, Any]]:
    return {
        # Daily, at the configured local hour (midnight by default)
        "auto-extend-rentals": {
            "task": AUTO_EXTEND_TASK,
            "schedule": crontab(hour=settings.auto_extension_hour, minute=0),
            "options": {"expires": 3600},
        },
        # Hourly PIN expiry sweep and revocation retry
        "cleanup-expired-pins": {
            "task": CLEANUP_PINS_TASK,
            "schedule": crontab(minute=settings.pin_sweep_minute),
            "options": {"expires": 1800},
        },
    }
