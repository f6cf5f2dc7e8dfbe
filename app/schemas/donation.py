"""Schemas for donation ledger entries."""
from datetime import datetime

from app.models.donation import DonationStatus, PaymentMethod

from .base import CamelModel


class DonationRead(CamelModel):
    id: int
    cause_id: int
    donor_id: int | None
    amount: int
    platform_fee: int
    total_amount: int
    status: DonationStatus
    payment_method: PaymentMethod
    message: str | None = None
    is_anonymous: bool
    transaction_id: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class PublicDonationRead(CamelModel):
    """Donation as shown on a cause page; ``donor_id`` is blanked for anonymous gifts."""

    id: int
    cause_id: int
    donor_id: int | None
    amount: int
    message: str | None = None
    is_anonymous: bool
    completed_at: datetime | None = None

    @classmethod
    def from_donation(cls, donation) -> "PublicDonationRead":
        item = cls.model_validate(donation)
        if item.is_anonymous:
            item.donor_id = None
        return item
