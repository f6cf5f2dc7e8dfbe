"""User model."""
import enum

from sqlalchemy import Boolean, Enum as SqlEnum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class UserRole(str, enum.Enum):
    donor = "donor"
    fundraiser = "fundraiser"
    admin = "admin"


class User(Base):
    """Represents a Good Deed Hub account."""

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SqlEnum(UserRole, name="userrole"), nullable=False, default=UserRole.donor
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    donor_profile = relationship("DonorProfile", back_populates="user", uselist=False)
