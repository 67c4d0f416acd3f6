"""
Payment processor webhook endpoint.

The raw body is handed to the processor adapter for signature verification
before anything in it is trusted.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..core.exceptions import DomainException
from ..schemas.webhook import WebhookAck
from ..services.dependencies import get_payment_webhook_service
from ..services.webhook_service import PaymentWebhookService
from . import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/payments", response_model=WebhookAck)
async def handle_payment_events(
    request: Request,
    webhook_service: PaymentWebhookService = Depends(get_payment_webhook_service),
) -> WebhookAck:
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        logger.warning("Missing payment webhook signature header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing stripe-signature header"
        )
    try:
        return webhook_service.handle(payload, signature)
    except DomainException as exc:
        handle_domain_exception(exc)
