"""Donor profile model."""
from sqlalchemy import CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class DonorProfile(Base):
    """Per-donor aggregate; ``total_donations`` only grows with completed donations."""

    __tablename__ = "donor_profiles"
    __table_args__ = (
        CheckConstraint("total_donations >= 0", name="ck_donor_total_donations_non_negative"),
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    total_donations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    mobile_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    user = relationship("User", back_populates="donor_profile")
