"""Schemas for the payment endpoints."""
from pydantic import Field

from app.services.payment_metadata import MAX_MESSAGE_LENGTH

from .base import CamelModel
from .donation import DonationRead


class PaymentIntentCreate(CamelModel):
    amount: int
    cause_id: int
    is_anonymous: bool = False
    message: str | None = Field(default=None, max_length=MAX_MESSAGE_LENGTH)


class PaymentIntentRead(CamelModel):
    client_secret: str
    transaction_id: str
    platform_fee: int
    net_amount: int
    total_amount: int


class PaymentConfirm(CamelModel):
    transaction_id: str = Field(min_length=1)
    cause_id: int
    message: str | None = Field(default=None, max_length=MAX_MESSAGE_LENGTH)
    is_anonymous: bool | None = None


class CheckoutSessionCreate(PaymentIntentCreate):
    success_url: str | None = None
    cancel_url: str | None = None


class CheckoutSessionRead(CamelModel):
    session_id: str
    url: str


class DonationEnvelope(CamelModel):
    donation: DonationRead


class SessionVerifyRead(CamelModel):
    success: bool
    donation: DonationRead


class GatewayPaymentRead(CamelModel):
    id: str
    status: str
    amount: int
    currency: str


class PaymentVerifyRead(CamelModel):
    success: bool
    payment: GatewayPaymentRead
    donation: DonationRead | None = None


class WebhookStatusRead(CamelModel):
    status: str
    donation: DonationRead | None = None


class WebhookAck(CamelModel):
    received: bool
    type: str
    id: str
