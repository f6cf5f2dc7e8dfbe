"""Client-driven payment reconciliation: confirmations, session polls, status lookups."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.db import atomic
from app.models.donation import Donation
from app.models.donor import DonorProfile
from app.models.user import UserRole
from app.services import ledger
from app.services.ledger import ReconcileResult, TransitionOutcome
from app.services.payment_metadata import DonationMetadata
from app.utils.errors import InvalidStateError, NotFoundError, PaymentNotCompletedError, ValidationError

if TYPE_CHECKING:  # pragma: no cover - hints only
    from app.security import Principal
    from app.services.psp_stripe import GatewayIntent, GatewaySession, StripeGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSnapshot:
    intent: "GatewayIntent"
    donation: Donation | None

    @property
    def success(self) -> bool:
        return self.intent.succeeded


def _raise_if_rejected(result: ReconcileResult) -> Donation:
    if result.outcome is TransitionOutcome.REJECTED:
        raise InvalidStateError(
            "Donation has already been marked as failed.",
            code="DONATION_FAILED",
            details={"transaction_id": result.donation.transaction_id},
        )
    return result.donation


def confirm_payment(
    db: Session,
    gateway: "StripeGateway",
    *,
    donor: DonorProfile,
    transaction_id: str,
    cause_id: int,
    message: str | None = None,
    is_anonymous: bool | None = None,
) -> Donation:
    """Complete the donation for an intent the frontend reports as paid.

    The intent is re-fetched so the gateway, not the caller, decides whether
    the payment succeeded. Repeated calls return the same donation.
    """

    intent = gateway.retrieve_payment_intent(transaction_id)
    if not intent.succeeded:
        raise PaymentNotCompletedError(
            "Payment not successful",
            details={"transaction_id": transaction_id, "status": intent.status},
        )

    metadata: DonationMetadata | None = None
    if DonationMetadata.is_donation(intent.metadata):
        metadata = DonationMetadata.from_gateway(intent.metadata)
        if metadata.cause_id != cause_id:
            raise ValidationError(
                "causeId does not match the payment.",
                code="PAYMENT_CAUSE_MISMATCH",
                details={"transaction_id": transaction_id},
            )
        if metadata.donor_id != donor.id:
            raise ValidationError(
                "Payment belongs to another donor.",
                code="PAYMENT_DONOR_MISMATCH",
                details={"transaction_id": transaction_id},
            )

    with atomic(db):
        result = ledger.reconcile_success(
            db,
            transaction_id=transaction_id,
            metadata=metadata,
            source="client_confirm",
            message=message,
            is_anonymous=is_anonymous,
        )
        if result is None:
            raise ValidationError(
                "Payment metadata is missing donation fields.",
                code="PAYMENT_METADATA_INCOMPLETE",
                details={"transaction_id": transaction_id},
            )
        donation = _raise_if_rejected(result)
    return donation


def reconcile_checkout_session(
    db: Session, session: "GatewaySession", *, source: str
) -> ReconcileResult | None:
    """Complete the donation behind a paid checkout session. Caller owns the transaction."""

    if not session.payment_intent_id:
        raise ValidationError(
            "Checkout session has no payment intent.",
            code="SESSION_WITHOUT_INTENT",
            details={"session_id": session.id},
        )
    raw = session.donation_metadata
    metadata = DonationMetadata.from_gateway(raw) if DonationMetadata.is_donation(raw) else None
    return ledger.reconcile_success(
        db,
        transaction_id=session.payment_intent_id,
        metadata=metadata,
        source=source,
    )


def verify_checkout_session(db: Session, gateway: "StripeGateway", session_id: str) -> Donation:
    """Public poll used by the success page; may race with the webhook for the same payment."""

    session = gateway.retrieve_checkout_session(session_id)
    if not session.paid:
        raise PaymentNotCompletedError(
            "Payment not completed",
            details={"session_id": session_id, "payment_status": session.payment_status},
        )

    with atomic(db):
        result = reconcile_checkout_session(db, session, source="session_verify")
        if result is None:
            raise ValidationError(
                "Payment metadata is missing donation fields.",
                code="PAYMENT_METADATA_INCOMPLETE",
                details={"session_id": session_id},
            )
        donation = _raise_if_rejected(result)
    return donation


def _may_view(db: Session, principal: "Principal", donor_id: int | None) -> bool:
    """Admins see every payment, donors only their own."""

    if principal.role == UserRole.admin:
        return True
    if donor_id is None:
        return False
    profile = db.get(DonorProfile, donor_id)
    return profile is not None and profile.user_id == principal.id


def describe_payment(
    db: Session, gateway: "StripeGateway", transaction_id: str, *, principal: "Principal"
) -> PaymentSnapshot:
    """Read-only view of the gateway intent next to the local donation, if any.

    Before a donation exists, ownership comes from the donor id in the intent metadata.
    """

    intent = gateway.retrieve_payment_intent(transaction_id)
    donation = ledger.get_donation_by_transaction(db, transaction_id)
    donor_id = donation.donor_id if donation is not None else DonationMetadata.donor_id_of(intent.metadata)
    if not _may_view(db, principal, donor_id):
        raise NotFoundError(
            "Payment not found",
            code="PAYMENT_NOT_FOUND",
            details={"transaction_id": transaction_id},
        )
    return PaymentSnapshot(intent=intent, donation=donation)


def webhook_status(
    db: Session, transaction_id: str, *, principal: "Principal"
) -> tuple[str, Donation | None]:
    """Local ledger status for a transaction, ``"not_found"`` before any signal arrived.

    Another donor's donation is reported as ``"not_found"`` too.
    """

    donation = ledger.get_donation_by_transaction(db, transaction_id)
    if donation is None or not _may_view(db, principal, donation.donor_id):
        return "not_found", None
    return donation.status.value, donation


__all__ = [
    "PaymentSnapshot",
    "confirm_payment",
    "describe_payment",
    "reconcile_checkout_session",
    "verify_checkout_session",
    "webhook_status",
]
