# trailer_rental/services/dependencies.py
"""
Service wiring.

``build_*`` functions assemble services from explicit collaborators and are
shared by the FastAPI providers below and by the Celery tasks. The providers
read their collaborators from ``app.state``, populated by ``create_app``.
"""

from typing import Iterator, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..integrations.lock_controller import LockController
from ..integrations.payment_processor import PaymentProcessor
from .availability_service import AvailabilityService
from .expiry_service import ExpirySweeper
from .extension_service import AutoExtensionService
from .notification_service import EmailSender, NotificationService
from .payment_service import PaymentService
from .pin_service import PinService
from .reservation_service import ReservationService
from .webhook_service import PaymentWebhookService


def build_reservation_service(
    db: Session,
    settings: Settings,
    *,
    processor: PaymentProcessor,
    lock_controller: LockController,
    email_sender: Optional[EmailSender] = None,
) -> ReservationService:
    return ReservationService(
        db,
        settings,
        payment_service=PaymentService(db, settings, processor),
        pin_service=PinService(db, settings, lock_controller),
        notification_service=NotificationService(settings, email_sender),
        availability_service=AvailabilityService(db, settings),
    )


def build_auto_extension_service(
    db: Session,
    settings: Settings,
    *,
    processor: PaymentProcessor,
    lock_controller: LockController,
    email_sender: Optional[EmailSender] = None,
) -> AutoExtensionService:
    reservation_service = build_reservation_service(
        db,
        settings,
        processor=processor,
        lock_controller=lock_controller,
        email_sender=email_sender,
    )
    return AutoExtensionService(db, settings, reservation_service)


def build_expiry_sweeper(
    db: Session, settings: Settings, *, lock_controller: LockController
) -> ExpirySweeper:
    return ExpirySweeper(db, settings, PinService(db, settings, lock_controller))


# FastAPI providers


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Iterator[Session]:
    session: Session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def get_payment_processor(request: Request) -> PaymentProcessor:
    return request.app.state.payment_processor


def get_lock_controller(request: Request) -> LockController:
    return request.app.state.lock_controller


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender


def get_availability_service(
    db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)
) -> AvailabilityService:
    return AvailabilityService(db, settings)


def get_payment_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    processor: PaymentProcessor = Depends(get_payment_processor),
) -> PaymentService:
    return PaymentService(db, settings, processor)


def get_reservation_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    processor: PaymentProcessor = Depends(get_payment_processor),
    lock_controller: LockController = Depends(get_lock_controller),
    email_sender: EmailSender = Depends(get_email_sender),
) -> ReservationService:
    """
    Dependency injection function for ReservationService.

    Usage in routes:
        reservation_service: ReservationService = Depends(get_reservation_service)
    """
    return build_reservation_service(
        db,
        settings,
        processor=processor,
        lock_controller=lock_controller,
        email_sender=email_sender,
    )


def get_payment_webhook_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    processor: PaymentProcessor = Depends(get_payment_processor),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> PaymentWebhookService:
    return PaymentWebhookService(
        db, settings, processor=processor, reservation_service=reservation_service
    )
