"""User schemas."""

from typing import Optional

from ._strict_base import StrictModel


class PaymentCustomerResponse(StrictModel):
    id: str
    email: str
    payment_customer_ref: Optional[str] = None
