# trailer_rental/services/notification_service.py
"""
Renter notifications.

Bodies are rendered from the Jinja2 templates under ``trailer_rental/templates``.
Delivery is fire-and-forget: a failing provider is logged and never
propagates into the reservation transition that triggered it.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
from pathlib import Path
from typing import Any, List, Optional, Protocol

from jinja2 import Environment, FileSystemLoader, TemplateNotFound

from ..core.config import Settings
from ..core.timezone_utils import get_timezone
from ..models.reservation import Reservation
from ..models.trailer import Trailer
from ..models.user import User

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


@dataclass(frozen=True)
class EmailMessage:
    to_email: str
    subject: str
    body_html: str
    from_email: str


class EmailSender(Protocol):
    def send(self, message: EmailMessage) -> None: ...


class ConsoleEmailSender:
    """Writes messages to the log instead of delivering them. Keeps an in-memory outbox."""

    def __init__(self) -> None:
        self.outbox: List[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.outbox.append(message)
        logger.info(
            "email_console_send",
            extra={"to": message.to_email, "subject": message.subject},
        )


def build_email_sender(settings: Settings) -> EmailSender:
    # Only the console provider ships today
    return ConsoleEmailSender()


def _local_date(value: datetime, tz_name: str) -> str:
    local = value.astimezone(get_timezone(tz_name))
    return f"{local.day}. {local.month}. {local.year}"


def _czk(value: int) -> str:
    return f"{value:,} Kč".replace(",", " ")


def build_template_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(TEMPLATE_DIR),
        autoescape=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["local_date"] = _local_date
    env.filters["czk"] = _czk
    return env


class NotificationService:
    def __init__(self, settings: Settings, sender: Optional[EmailSender] = None):
        self.settings = settings
        self.sender = sender or build_email_sender(settings)
        self.env = build_template_environment()

    def render(self, template_name: str, **context: Any) -> str:
        template = self.env.get_template(template_name)
        return template.render(support_email=self.settings.support_email, **context)

    def _send(
        self,
        kind: str,
        subject: str,
        reservation: Reservation,
        trailer: Trailer,
        user: User,
    ) -> bool:
        try:
            body = self.render(f"email/{kind}.jinja", reservation=reservation, trailer=trailer)
            self.sender.send(
                EmailMessage(
                    to_email=user.email,
                    subject=subject,
                    body_html=body,
                    from_email=self.settings.email_from_address,
                )
            )
        except TemplateNotFound:
            logger.error("notification_template_missing", extra={"kind": kind})
            return False
        except Exception as exc:
            logger.error(
                "notification_failed",
                extra={"kind": kind, "reservation_id": reservation.id, "error": str(exc)},
            )
            return False
        return True

    def send_reservation_confirmed(
        self, reservation: Reservation, trailer: Trailer, user: User
    ) -> bool:
        return self._send(
            "reservation_confirmed", "Potvrzení rezervace přívěsu", reservation, trailer, user
        )

    def send_pin_changed(self, reservation: Reservation, trailer: Trailer, user: User) -> bool:
        return self._send("pin_changed", "Nový PIN kód k přívěsu", reservation, trailer, user)

    def send_reservation_cancelled(
        self, reservation: Reservation, trailer: Trailer, user: User
    ) -> bool:
        return self._send(
            "reservation_cancelled", "Rezervace přívěsu zrušena", reservation, trailer, user
        )
