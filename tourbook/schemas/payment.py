"""Payment-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .booking import Booking
from .common import Money


class InitializePaymentRequest(BaseModel):
    """Request schema for starting a payment; payer fields default to the user's profile."""

    booking_id: UUID = Field(..., description="Booking to pay for")
    email: Optional[str] = Field(None, max_length=320, description="Payer email")
    first_name: Optional[str] = Field(None, max_length=100, description="Payer first name")
    last_name: Optional[str] = Field(None, max_length=100, description="Payer last name")


class PaymentInitialization(BaseModel):
    """Response schema for an opened checkout."""

    checkout_url: str = Field(..., description="Hosted checkout page")
    transaction_reference: str = Field(..., description="Reference to verify the payment with")
    amount: Money = Field(..., description="Amount to pay")
    booking_id: str = Field(..., description="Booking being paid")


class VerifyPaymentRequest(BaseModel):
    """Request schema for verifying a payment."""

    transaction_reference: str = Field(..., min_length=1, max_length=128, description="Transaction reference")


class PaymentVerification(BaseModel):
    """Response schema for a payment verification."""

    status: str = Field(..., description="success, failed or pending")
    message: str = Field(..., description="Human-readable outcome")
    transaction_reference: str = Field(..., description="Verified transaction")
    paid_at: Optional[datetime] = Field(None, description="Payment confirmation time")
    booking: Booking = Field(..., description="Booking after the verification")


class PaymentStatusRequest(BaseModel):
    """Request schema for a booking's payment status."""

    booking_id: UUID = Field(..., description="Booking ID")


class PaymentStatus(BaseModel):
    """Response schema for a booking's payment status."""

    status: str = Field(..., description="not_started, confirmed, success, failed, pending or a booking status")
    message: str = Field(..., description="Human-readable status")
    booking: Booking = Field(..., description="The booking")
