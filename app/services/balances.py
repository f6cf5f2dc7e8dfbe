"""Projection of completed donations onto cause and donor totals."""
from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.cause import Cause
from app.models.donation import Donation
from app.models.donor import DonorProfile
from app.utils.errors import NotFoundError

logger = logging.getLogger(__name__)


def apply_completion(db: Session, donation: Donation) -> None:
    """Credit ``donation.amount`` to its cause and donor.

    Runs inside the caller's transaction, right after the donation's status
    flip. Increments are server-side (``x = x + n``) so concurrent completions
    for other donations never overwrite each other. A missing aggregate raises
    ``NotFoundError`` and the caller rolls the whole unit back.
    """

    amount = donation.amount

    cause_result = db.execute(
        update(Cause)
        .where(Cause.id == donation.cause_id)
        .values(current_amount=Cause.current_amount + amount)
        .execution_options(synchronize_session=False)
    )
    if cause_result.rowcount != 1:
        raise NotFoundError(
            "Cause not found",
            code="CAUSE_NOT_FOUND",
            details={"cause_id": donation.cause_id},
        )

    donor_result = db.execute(
        update(DonorProfile)
        .where(DonorProfile.id == donation.donor_id)
        .values(total_donations=DonorProfile.total_donations + amount)
        .execution_options(synchronize_session=False)
    )
    if donor_result.rowcount != 1:
        raise NotFoundError(
            "Donor profile not found",
            code="DONOR_NOT_FOUND",
            details={"donor_id": donation.donor_id},
        )

    logger.info(
        "Donation projected onto balances",
        extra={
            "donation_id": donation.id,
            "cause_id": donation.cause_id,
            "donor_id": donation.donor_id,
            "amount": amount,
        },
    )


__all__ = ["apply_completion"]
