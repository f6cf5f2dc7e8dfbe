"""Donation ledger model."""
import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class DonationStatus(str, enum.Enum):
    """Ledger states. ``pending`` is the only non-terminal state."""

    pending = "pending"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not DonationStatus.pending


class PaymentMethod(str, enum.Enum):
    stripe = "stripe"
    other = "other"


class Donation(Base):
    """One attempted or completed payment from a donor to a cause.

    ``transaction_id`` holds the gateway payment-intent id and is the
    idempotency key shared by every reconciliation entry point.
    """

    __tablename__ = "donations"
    __table_args__ = (
        UniqueConstraint("transaction_id", name="uq_donations_transaction_id"),
        CheckConstraint("amount >= 0", name="ck_donation_amount_non_negative"),
        CheckConstraint("platform_fee >= 0", name="ck_donation_platform_fee_non_negative"),
        CheckConstraint("total_amount = amount + platform_fee", name="ck_donation_total_amount"),
        Index("ix_donations_donor_cause", "donor_id", "cause_id"),
        Index("ix_donations_status", "status"),
    )

    donor_id: Mapped[int] = mapped_column(ForeignKey("donor_profiles.id"), nullable=False)
    cause_id: Mapped[int] = mapped_column(ForeignKey("causes.id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_fee: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[DonationStatus] = mapped_column(
        SqlEnum(DonationStatus, name="donationstatus"), default=DonationStatus.pending, nullable=False
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SqlEnum(PaymentMethod, name="paymentmethod"), default=PaymentMethod.stripe, nullable=False
    )
    message: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    cause = relationship("Cause")
    donor = relationship("DonorProfile")
