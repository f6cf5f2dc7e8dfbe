"""Cause schemas."""
from datetime import datetime

from app.models.cause import CauseStatus

from .base import CamelModel


class CauseRead(CamelModel):
    id: int
    title: str
    description: str | None = None
    category: str | None = None
    goal_amount: int
    current_amount: int
    status: CauseStatus
    end_date: datetime | None = None
