"""ORM models package."""
from .api_key import ApiKey
from .audit import AuditLog
from .base import Base
from .cause import Cause, CauseStatus
from .donation import Donation, DonationStatus, PaymentMethod
from .donor import DonorProfile
from .psp_webhook import PSPWebhookEvent
from .user import User, UserRole

__all__ = [
    "ApiKey",
    "AuditLog",
    "Base",
    "Cause",
    "CauseStatus",
    "Donation",
    "DonationStatus",
    "DonorProfile",
    "PaymentMethod",
    "PSPWebhookEvent",
    "User",
    "UserRole",
]
