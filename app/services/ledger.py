"""Donation ledger reconciliation.

Every signal about a gateway payment (client confirmation, webhook, session
poll, background sweep) ends up here and is keyed by the payment-intent id
stored in ``Donation.transaction_id``. The functions in this module never
commit: entry points wrap them in :func:`app.db.atomic` so the donation write,
the status flip and the balance projection land in one transaction.

Precedence: an existing local donation is authoritative for amounts. The
gateway metadata is used only when the record has to be created.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.cause import Cause
from app.models.donation import Donation, DonationStatus, PaymentMethod
from app.models.donor import DonorProfile
from app.services.balances import apply_completion
from app.services.payment_metadata import DonationMetadata
from app.utils.audit import log_audit
from app.utils.errors import NotFoundError
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


class TransitionOutcome(str, enum.Enum):
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ReconcileResult:
    donation: Donation
    outcome: TransitionOutcome
    created: bool = False

    @property
    def applied(self) -> bool:
        """True only for the one call that flipped the donation and moved the balances."""

        return self.outcome is TransitionOutcome.COMPLETED


def get_donation_by_transaction(
    db: Session, transaction_id: str, *, for_update: bool = False
) -> Donation | None:
    stmt = (
        select(Donation)
        .where(Donation.transaction_id == transaction_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db.scalars(stmt).first()


def _ensure_references(db: Session, metadata: DonationMetadata) -> None:
    if db.get(Cause, metadata.cause_id) is None:
        raise NotFoundError(
            "Cause not found", code="CAUSE_NOT_FOUND", details={"cause_id": metadata.cause_id}
        )
    if db.get(DonorProfile, metadata.donor_id) is None:
        raise NotFoundError(
            "Donor profile not found", code="DONOR_NOT_FOUND", details={"donor_id": metadata.donor_id}
        )


def _find_or_create(
    db: Session,
    transaction_id: str,
    metadata: DonationMetadata | None,
    *,
    source: str,
) -> tuple[Donation | None, bool]:
    """Return the donation for ``transaction_id``, inserting a pending one from metadata if absent.

    The insert runs in a SAVEPOINT. When a concurrent writer wins the race on
    the unique ``transaction_id`` the savepoint is rolled back and the winner's
    row is returned, so the caller carries on as an update.
    """

    donation = get_donation_by_transaction(db, transaction_id, for_update=True)
    if donation is not None:
        return donation, False
    if metadata is None:
        return None, False

    _ensure_references(db, metadata)
    candidate = Donation(
        transaction_id=transaction_id,
        donor_id=metadata.donor_id,
        cause_id=metadata.cause_id,
        amount=metadata.net_amount,
        platform_fee=metadata.platform_fee,
        total_amount=metadata.total_amount,
        status=DonationStatus.pending,
        payment_method=PaymentMethod.stripe,
        message=metadata.message,
        is_anonymous=metadata.is_anonymous,
    )
    try:
        with db.begin_nested():
            db.add(candidate)
    except IntegrityError:
        donation = get_donation_by_transaction(db, transaction_id, for_update=True)
        if donation is None:
            raise
        logger.info(
            "Donation created concurrently; continuing as update",
            extra={"transaction_id": transaction_id, "donation_id": donation.id, "source": source},
        )
        return donation, False

    log_audit(
        db,
        actor=source,
        action="DONATION_RECORDED",
        entity="Donation",
        entity_id=candidate.id,
        data={"transaction_id": transaction_id, "amount": candidate.amount},
    )
    return candidate, True


def try_complete(db: Session, donation: Donation) -> TransitionOutcome:
    """Flip ``pending -> completed`` with a compare-and-swap on the status column.

    Only the caller that wins the swap gets ``COMPLETED`` and may apply the
    balance projection. ``donation`` is refreshed from the database either way.
    """

    now = utcnow()
    result = db.execute(
        update(Donation)
        .where(Donation.id == donation.id, Donation.status == DonationStatus.pending)
        .values(status=DonationStatus.completed, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.refresh(donation)
    if result.rowcount == 1:
        return TransitionOutcome.COMPLETED
    if donation.status == DonationStatus.completed:
        return TransitionOutcome.ALREADY_COMPLETED
    return TransitionOutcome.REJECTED


def try_fail(db: Session, donation: Donation) -> bool:
    """Flip ``pending -> failed``; returns False when the donation is already terminal."""

    now = utcnow()
    result = db.execute(
        update(Donation)
        .where(Donation.id == donation.id, Donation.status == DonationStatus.pending)
        .values(status=DonationStatus.failed, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.refresh(donation)
    return result.rowcount == 1


def record_pending(
    db: Session,
    *,
    transaction_id: str,
    metadata: DonationMetadata,
    source: str,
) -> Donation:
    """Make sure a donation exists for a freshly created intent. Never touches balances."""

    donation, created = _find_or_create(db, transaction_id, metadata, source=source)
    assert donation is not None  # metadata is always given here
    logger.info(
        "Pending donation recorded" if created else "Donation already known for intent",
        extra={"transaction_id": transaction_id, "donation_id": donation.id, "source": source},
    )
    return donation


def reconcile_success(
    db: Session,
    *,
    transaction_id: str,
    metadata: DonationMetadata | None,
    source: str,
    message: str | None = None,
    is_anonymous: bool | None = None,
) -> ReconcileResult | None:
    """Find-or-create the donation and drive it to ``completed`` exactly once.

    Returns ``None`` when no donation exists and there is no metadata to build
    one from. ``message``/``is_anonymous`` overwrite the stored values only
    while the donation is still pending.
    """

    donation, created = _find_or_create(db, transaction_id, metadata, source=source)
    if donation is None:
        return None

    if donation.status == DonationStatus.pending:
        if message is not None:
            donation.message = message
        if is_anonymous is not None:
            donation.is_anonymous = is_anonymous
        db.flush()

    outcome = try_complete(db, donation)
    if outcome is TransitionOutcome.COMPLETED:
        apply_completion(db, donation)
        log_audit(
            db,
            actor=source,
            action="DONATION_COMPLETED",
            entity="Donation",
            entity_id=donation.id,
            data={
                "transaction_id": transaction_id,
                "cause_id": donation.cause_id,
                "donor_id": donation.donor_id,
                "amount": donation.amount,
                "platform_fee": donation.platform_fee,
            },
        )
        logger.info(
            "Donation completed",
            extra={"transaction_id": transaction_id, "donation_id": donation.id, "source": source},
        )
    elif outcome is TransitionOutcome.ALREADY_COMPLETED:
        logger.info(
            "Donation already completed; nothing to apply",
            extra={"transaction_id": transaction_id, "donation_id": donation.id, "source": source},
        )
    else:
        logger.warning(
            "Success signal for a failed donation ignored",
            extra={"transaction_id": transaction_id, "donation_id": donation.id, "source": source},
        )
    return ReconcileResult(donation=donation, outcome=outcome, created=created)


def mark_failed(db: Session, *, transaction_id: str, source: str) -> Donation | None:
    """Mark a pending donation as failed; unknown transactions are logged and ignored."""

    donation = get_donation_by_transaction(db, transaction_id, for_update=True)
    if donation is None:
        logger.info(
            "Payment failure for unknown transaction ignored",
            extra={"transaction_id": transaction_id, "source": source},
        )
        return None

    if not try_fail(db, donation):
        logger.info(
            "Donation already terminal; skipping failure update",
            extra={"donation_id": donation.id, "status": donation.status.value, "source": source},
        )
        return donation

    log_audit(
        db,
        actor=source,
        action="DONATION_FAILED",
        entity="Donation",
        entity_id=donation.id,
        data={"transaction_id": transaction_id},
    )
    logger.info(
        "Donation marked as failed",
        extra={"transaction_id": transaction_id, "donation_id": donation.id, "source": source},
    )
    return donation


__all__ = [
    "ReconcileResult",
    "TransitionOutcome",
    "get_donation_by_transaction",
    "mark_failed",
    "reconcile_success",
    "record_pending",
    "try_complete",
    "try_fail",
]
