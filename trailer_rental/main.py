# trailer_rental/main.py
"""
FastAPI application factory.

    uvicorn trailer_rental.main:app
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from sqlalchemy.orm import sessionmaker

from . import __version__
from .core.config import Settings, get_settings
from .database import Base, build_engine, build_session_factory
from .integrations.lock_controller import LockController, build_lock_controller
from .integrations.payment_processor import PaymentProcessor, StripePaymentProcessor
from .routes import (
    admin_reservations,
    admin_trailers,
    availability,
    health,
    reservations,
    users,
    webhooks,
)
from .services.notification_service import EmailSender, build_email_sender

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    settings: Settings = app.state.settings
    logger.info(f"Trailer rental API starting up (environment: {settings.environment})")
    if not settings.is_production:
        # Local and test databases are created from the models; production is migrated
        import trailer_rental.models  # noqa: F401

        Base.metadata.create_all(bind=app.state.session_factory.kw["bind"])
    yield
    logger.info("Trailer rental API shutting down")


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_factory: Optional[sessionmaker] = None,
    payment_processor: Optional[PaymentProcessor] = None,
    lock_controller: Optional[LockController] = None,
    email_sender: Optional[EmailSender] = None,
) -> FastAPI:
    """Build the application; collaborators default to what ``settings`` selects."""
    settings = settings or get_settings()
    app = FastAPI(
        title="Trailer Rental API",
        description="Reservation lifecycle and availability engine",
        version=__version__,
        lifespan=app_lifespan,
    )
    app.state.settings = settings
    app.state.session_factory = session_factory or build_session_factory(build_engine(settings))
    app.state.payment_processor = payment_processor or StripePaymentProcessor(settings)
    app.state.lock_controller = lock_controller or build_lock_controller(settings)
    app.state.email_sender = email_sender or build_email_sender(settings)

    app.include_router(health.router)
    app.include_router(availability.router)
    app.include_router(reservations.router)
    app.include_router(users.router)
    app.include_router(admin_trailers.router)
    app.include_router(admin_reservations.router)
    app.include_router(webhooks.router)
    return app


app = create_app()
