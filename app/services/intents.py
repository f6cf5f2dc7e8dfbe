"""Opening gateway payments for a donation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.cause import Cause, CauseStatus
from app.models.donor import DonorProfile
from app.services.fees import FeeBreakdown, compute_fee
from app.services.payment_metadata import DonationMetadata
from app.utils.errors import InvalidStateError, NotFoundError

if TYPE_CHECKING:  # pragma: no cover - hints only
    from app.services.psp_stripe import StripeGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntentHandle:
    client_secret: str
    transaction_id: str
    fees: FeeBreakdown


@dataclass(frozen=True)
class CheckoutHandle:
    session_id: str
    url: str
    fees: FeeBreakdown


def get_donatable_cause(db: Session, cause_id: int) -> Cause:
    """Return the cause if it exists and is approved."""

    cause = db.get(Cause, cause_id)
    if cause is None:
        raise NotFoundError("Cause not found", code="CAUSE_NOT_FOUND", details={"cause_id": cause_id})
    if cause.status != CauseStatus.approved:
        raise InvalidStateError(
            "cannot donate to unapproved cause",
            code="CAUSE_NOT_APPROVED",
            details={"cause_id": cause_id, "status": cause.status.value},
        )
    return cause


def _prepare(
    db: Session,
    *,
    cause_id: int,
    donor: DonorProfile,
    gross_amount: int,
    is_anonymous: bool,
    message: str | None,
) -> tuple[Cause, FeeBreakdown, DonationMetadata]:
    fees = compute_fee(gross_amount)
    cause = get_donatable_cause(db, cause_id)
    metadata = DonationMetadata(
        cause_id=cause.id,
        donor_id=donor.id,
        net_amount=fees.net_amount,
        platform_fee=fees.platform_fee,
        is_anonymous=is_anonymous,
        message=message or None,
    )
    return cause, fees, metadata


def create_payment_intent(
    db: Session,
    gateway: "StripeGateway",
    *,
    cause_id: int,
    donor: DonorProfile,
    gross_amount: int,
    is_anonymous: bool = False,
    message: str | None = None,
) -> IntentHandle:
    """Open a gateway intent for ``gross_amount``; nothing is written locally."""

    cause, fees, metadata = _prepare(
        db,
        cause_id=cause_id,
        donor=donor,
        gross_amount=gross_amount,
        is_anonymous=is_anonymous,
        message=message,
    )
    intent = gateway.create_payment_intent(amount=fees.gross_amount, metadata=metadata)
    logger.info(
        "Payment intent created",
        extra={
            "pi_id": intent.id,
            "cause_id": cause.id,
            "donor_id": donor.id,
            "gross_amount": fees.gross_amount,
            "platform_fee": fees.platform_fee,
        },
    )
    return IntentHandle(client_secret=intent.client_secret or "", transaction_id=intent.id, fees=fees)


def create_checkout_session(
    db: Session,
    gateway: "StripeGateway",
    *,
    cause_id: int,
    donor: DonorProfile,
    gross_amount: int,
    is_anonymous: bool = False,
    message: str | None = None,
    success_url: str | None = None,
    cancel_url: str | None = None,
) -> CheckoutHandle:
    """Open a hosted checkout session; the frontend redirects the donor to ``url``."""

    cause, fees, metadata = _prepare(
        db,
        cause_id=cause_id,
        donor=donor,
        gross_amount=gross_amount,
        is_anonymous=is_anonymous,
        message=message,
    )
    frontend = get_settings().FRONTEND_URL.rstrip("/")
    session = gateway.create_checkout_session(
        amount=fees.gross_amount,
        title=cause.title,
        metadata=metadata,
        success_url=success_url or f"{frontend}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=cancel_url or f"{frontend}/causes/{cause.id}",
    )
    logger.info(
        "Checkout session created",
        extra={"session_id": session.id, "cause_id": cause.id, "donor_id": donor.id},
    )
    return CheckoutHandle(session_id=session.id, url=session.url or "", fees=fees)


__all__ = [
    "CheckoutHandle",
    "IntentHandle",
    "create_checkout_session",
    "create_payment_intent",
    "get_donatable_cause",
]
