"""Read-side queries over the donation ledger."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.cause import Cause, CauseStatus
from app.models.donation import Donation, DonationStatus
from app.models.donor import DonorProfile
from app.utils.errors import NotFoundError


def list_for_donor(db: Session, donor: DonorProfile, *, limit: int = 50, offset: int = 0) -> list[Donation]:
    """All donations of ``donor`` in any state, newest first."""

    stmt = (
        select(Donation)
        .where(Donation.donor_id == donor.id)
        .order_by(Donation.created_at.desc(), Donation.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(stmt))


def list_for_cause(db: Session, cause_id: int, *, limit: int = 50, offset: int = 0) -> list[Donation]:
    """Completed donations of a cause, newest first."""

    if db.get(Cause, cause_id) is None:
        raise NotFoundError("Cause not found", code="CAUSE_NOT_FOUND", details={"cause_id": cause_id})

    stmt = (
        select(Donation)
        .where(Donation.cause_id == cause_id, Donation.status == DonationStatus.completed)
        .order_by(Donation.completed_at.desc(), Donation.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(stmt))


RECOMMENDATION_LIMIT = 5


def list_recommended_causes(db: Session, donor: DonorProfile, *, limit: int = RECOMMENDATION_LIMIT) -> list[Cause]:
    """Approved causes in the categories ``donor`` has given to, minus the causes already supported.

    Donors without any categorised donation get an empty list.
    """

    donated_cause_ids = select(Donation.cause_id).where(Donation.donor_id == donor.id)
    categories = list(
        db.scalars(
            select(Cause.category)
            .where(Cause.id.in_(donated_cause_ids), Cause.category.is_not(None))
            .distinct()
        )
    )
    if not categories:
        return []

    stmt = (
        select(Cause)
        .where(
            Cause.status == CauseStatus.approved,
            Cause.category.in_(categories),
            Cause.id.not_in(donated_cause_ids),
        )
        .order_by(Cause.created_at.desc(), Cause.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


__all__ = ["list_for_cause", "list_for_donor", "list_recommended_causes"]
