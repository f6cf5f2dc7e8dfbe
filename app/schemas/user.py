"""User schemas."""
from pydantic import EmailStr, Field

from app.models.user import UserRole

from .base import CamelModel


class UserCreate(CamelModel):
    username: str = Field(min_length=1, max_length=100)
    email: EmailStr
    role: UserRole = UserRole.donor
    is_active: bool = True
    mobile_number: str | None = Field(default=None, max_length=20)


class UserRead(CamelModel):
    id: int
    username: str
    email: EmailStr
    role: UserRole
    is_active: bool
    donor_profile_id: int | None = None
