# trailer_rental/schemas/reservation.py
"""
Reservation schemas.

Timestamps are accepted as ISO 8601; values without an offset are read as UTC.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator, model_validator

from ..core.timezone_utils import ensure_utc
from ..core.validators import is_valid_company_tax_id, normalize_company_tax_id
from ._strict_base import StrictModel, StrictRequestModel


class _IntervalRequest(StrictRequestModel):
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_interval(self):
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        return self


class ReservationCreate(_IntervalRequest):
    """Create a reservation; payment authorization is requested immediately."""

    trailer_id: str = Field(..., min_length=1)
    company_tax_id: Optional[str] = Field(
        default=None, description="Czech company identification number (IČO)"
    )

    @field_validator("company_tax_id")
    @classmethod
    def _validate_tax_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        if not is_valid_company_tax_id(value):
            raise ValueError("Invalid company identification number")
        return normalize_company_tax_id(value)


class AvailabilityCheckRequest(_IntervalRequest):
    trailer_id: str = Field(..., min_length=1)


class AvailabilityCheckResponse(StrictModel):
    trailer_id: str
    start_date: datetime
    end_date: datetime
    available: bool
    rental_days: int
    total_price: int


class CheckOutRequest(StrictRequestModel):
    return_photos: List[str] = Field(default_factory=list)


class CancelRequest(StrictRequestModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class TrailerStatusUpdate(StrictRequestModel):
    status: Literal["available", "maintenance"]


class TrailerResponse(StrictModel):
    id: str
    name: str
    status: str
    price_one_day: int
    price_two_days: int
    price_additional_day: int


class ReservationResponse(StrictModel):
    id: str
    user_id: str
    trailer_id: str
    status: str
    start_date: datetime
    end_date: datetime
    actual_end_date: Optional[datetime] = None
    total_price: int
    company_tax_id: Optional[str] = None
    pin_code: Optional[str] = None
    pin_expiry: Optional[datetime] = None
    captured_amount: Optional[int] = None
    outstanding_amount: int = 0
    invoice_id: Optional[str] = None
    extension_count: int = 0
    cancellation_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    check_in_completed_at: Optional[datetime] = None
    check_out_completed_at: Optional[datetime] = None


class ReservationCreatedResponse(StrictModel):
    reservation: ReservationResponse
    client_secret: Optional[str] = None
