"""Schema package exports."""
from .base import CamelModel
from .cause import CauseRead
from .donation import DonationRead, PublicDonationRead
from .payment import (
    CheckoutSessionCreate,
    CheckoutSessionRead,
    DonationEnvelope,
    GatewayPaymentRead,
    PaymentConfirm,
    PaymentIntentCreate,
    PaymentIntentRead,
    PaymentVerifyRead,
    SessionVerifyRead,
    WebhookAck,
    WebhookStatusRead,
)
from .user import UserCreate, UserRead

__all__ = [
    "CamelModel",
    "CauseRead",
    "CheckoutSessionCreate",
    "CheckoutSessionRead",
    "DonationEnvelope",
    "DonationRead",
    "GatewayPaymentRead",
    "PaymentConfirm",
    "PaymentIntentCreate",
    "PaymentIntentRead",
    "PaymentVerifyRead",
    "PublicDonationRead",
    "SessionVerifyRead",
    "UserCreate",
    "UserRead",
    "WebhookAck",
    "WebhookStatusRead",
]
