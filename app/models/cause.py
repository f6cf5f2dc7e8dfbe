"""Cause model."""
import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class CauseStatus(str, enum.Enum):
    """Moderation status of a cause; only ``approved`` causes accept donations."""

    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class Cause(Base):
    """A fundraising campaign submitted by a fundraiser."""

    __tablename__ = "causes"
    __table_args__ = (
        CheckConstraint("goal_amount > 0", name="ck_cause_goal_amount_positive"),
        CheckConstraint("current_amount >= 0", name="ck_cause_current_amount_non_negative"),
        Index("ix_causes_status", "status"),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    fundraiser_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    goal_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    current_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[CauseStatus] = mapped_column(
        SqlEnum(CauseStatus, name="causestatus"), default=CauseStatus.pending, nullable=False
    )
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
