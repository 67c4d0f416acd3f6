"""
Payment processor webhook events.

Processor payloads are mapped onto a closed union discriminated by ``type``.
Handlers dispatch over the union exhaustively, so adding a variant without a
handler is caught by the type checker.
"""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _PaymentEventBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    event_id: str = Field(..., min_length=1)
    source_type: str = Field(..., description="Processor-native event type")
    handle: str = Field(..., min_length=1, description="Authorization handle")
    reservation_id: Optional[str] = None


class AuthorizationSucceeded(_PaymentEventBase):
    type: Literal["authorization_succeeded"] = "authorization_succeeded"
    amount_capturable: Optional[int] = None
    failure_reason: Optional[str] = None


class AuthorizationFailed(_PaymentEventBase):
    type: Literal["authorization_failed"] = "authorization_failed"
    amount_capturable: Optional[int] = None
    failure_reason: Optional[str] = None


PaymentWebhookEvent = Annotated[
    Union[AuthorizationSucceeded, AuthorizationFailed],
    Field(discriminator="type"),
]

_payment_event_adapter: TypeAdapter[Any] = TypeAdapter(PaymentWebhookEvent)


def parse_payment_event(data: Dict[str, Any]) -> PaymentWebhookEvent:
    return _payment_event_adapter.validate_python(data)


class WebhookAck(BaseModel):
    """Response body returned to the processor."""

    status: Literal["processed", "duplicate", "ignored"]
    event_id: Optional[str] = None
    outcome: Optional[str] = None
