"""Background cron jobs: reconciling donations stuck in ``pending``."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.db import atomic, session_scope
from app.models.donation import Donation, DonationStatus
from app.services import ledger
from app.services.psp_stripe import INTENT_CANCELED
from app.core.runtime_state import record_sweep
from app.utils.errors import DomainError
from app.utils.time import minutes_ago, utcnow

if TYPE_CHECKING:  # pragma: no cover - hints only
    from app.services.psp_stripe import StripeGateway

logger = logging.getLogger(__name__)

SWEEP_SOURCE = "pending_sweep"


def _stale_transaction_ids(db: Session, min_age_minutes: int) -> list[str]:
    stmt = (
        select(Donation.transaction_id)
        .where(
            Donation.status == DonationStatus.pending,
            Donation.transaction_id.is_not(None),
            Donation.created_at <= minutes_ago(min_age_minutes),
        )
        .order_by(Donation.created_at)
    )
    return list(db.scalars(stmt))


def reconcile_stale_pending_once(
    db: Session, gateway: "StripeGateway", *, min_age_minutes: int
) -> dict[str, Any]:
    """Ask the gateway about every stale pending donation; one transaction per donation."""

    summary: dict[str, Any] = {"checked": 0, "completed": 0, "failed": 0, "still_pending": 0, "errors": 0}
    for transaction_id in _stale_transaction_ids(db, min_age_minutes):
        summary["checked"] += 1
        try:
            intent = gateway.retrieve_payment_intent(transaction_id)
            with atomic(db):
                if intent.succeeded:
                    result = ledger.reconcile_success(
                        db, transaction_id=transaction_id, metadata=None, source=SWEEP_SOURCE
                    )
                    if result is not None and result.applied:
                        summary["completed"] += 1
                elif intent.status == INTENT_CANCELED:
                    donation = ledger.mark_failed(db, transaction_id=transaction_id, source=SWEEP_SOURCE)
                    if donation is not None and donation.status == DonationStatus.failed:
                        summary["failed"] += 1
                else:
                    summary["still_pending"] += 1
        except DomainError as exc:
            summary["errors"] += 1
            logger.warning(
                "Pending donation sweep skipped a transaction",
                extra={"transaction_id": transaction_id, "error_code": exc.code},
            )
        except SQLAlchemyError:
            # atomic() has rolled this donation back.
            summary["errors"] += 1
            logger.exception(
                "Pending donation sweep hit a database error",
                extra={"transaction_id": transaction_id},
            )

    summary["finished_at"] = utcnow().isoformat()
    logger.info("Pending donation sweep finished", extra=summary)
    return summary


def sweep_pending_donations(gateway: "StripeGateway") -> dict[str, Any]:
    """Scheduler entry point: open a session, sweep, remember the summary."""

    settings = get_settings()
    with session_scope() as db:
        summary = reconcile_stale_pending_once(
            db, gateway, min_age_minutes=settings.PENDING_SWEEP_MIN_AGE_MINUTES
        )
    record_sweep(summary)
    return summary


__all__ = ["reconcile_stale_pending_once", "sweep_pending_donations"]
