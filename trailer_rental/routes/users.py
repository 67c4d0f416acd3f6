# trailer_rental/routes/users.py
"""
Account endpoints for the signed-in user.

The renter app calls ``POST /users/me/payment-customer`` once after sign-up,
before the first reservation; repeated calls return the existing customer.
"""

import logging

from fastapi import APIRouter, Depends

from ..core.exceptions import DomainException
from ..schemas.user import PaymentCustomerResponse
from ..services.dependencies import get_payment_service
from ..services.payment_service import PaymentService
from . import get_current_user_id, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/me/payment-customer", response_model=PaymentCustomerResponse)
def ensure_payment_customer(
    user_id: str = Depends(get_current_user_id),
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentCustomerResponse:
    try:
        user = payment_service.ensure_customer(user_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return PaymentCustomerResponse.model_validate(user)
