"""Adapters for the external collaborators: payment processor and smart lock controller."""

from .lock_controller import (
    HttpLockController,
    LockController,
    NullLockController,
    build_lock_controller,
)
from .payment_processor import (
    AuthorizationHandle,
    CaptureResult,
    PaymentProcessor,
    StripePaymentProcessor,
)

__all__ = [
    "AuthorizationHandle",
    "CaptureResult",
    "HttpLockController",
    "LockController",
    "NullLockController",
    "PaymentProcessor",
    "StripePaymentProcessor",
    "build_lock_controller",
]
