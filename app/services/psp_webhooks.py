"""Services handling Stripe webhook callbacks."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db import atomic
from app.models.psp_webhook import PSPWebhookEvent
from app.services import ledger
from app.services import payments as payments_service
from app.services.payment_metadata import DonationMetadata
from app.utils.errors import ValidationError, WebhookProcessingError
from app.utils.time import utcnow

if TYPE_CHECKING:  # pragma: no cover - hints only
    from app.services.psp_stripe import GatewayEvent, StripeGateway

logger = logging.getLogger(__name__)

PAYMENT_INTENT_CREATED = "payment_intent.created"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
CHECKOUT_SESSION_EXPIRED = "checkout.session.expired"

WEBHOOK_SOURCE = "stripe_webhook"


def _find_event(db: Session, provider: str, event_id: str) -> PSPWebhookEvent | None:
    stmt = (
        select(PSPWebhookEvent)
        .where(PSPWebhookEvent.provider == provider, PSPWebhookEvent.event_id == event_id)
        .execution_options(populate_existing=True)
    )
    return db.scalars(stmt).first()


def _claim_event(db: Session, provider: str, event: "GatewayEvent") -> PSPWebhookEvent | None:
    """Record the delivery, or return ``None`` when the event was already processed."""

    if not event.id:
        raise ValidationError("Webhook event id is missing.", code="MISSING_EVENT_ID")

    existing = _find_event(db, provider, event.id)
    if existing is None:
        record = PSPWebhookEvent(
            provider=provider,
            event_id=event.id,
            kind=event.type,
            received_at=utcnow(),
        )
        try:
            with db.begin_nested():
                db.add(record)
            return record
        except IntegrityError:
            existing = _find_event(db, provider, event.id)
            if existing is None:
                raise

    if existing.processed_at is not None:
        return None
    return existing


def _intent_id(data: dict[str, Any]) -> str:
    intent_id = data.get("id")
    if not intent_id:
        raise ValidationError("PaymentIntent id is missing.", code="STRIPE_PAYLOAD_INCOMPLETE")
    return intent_id


def _on_intent_created(db: Session, data: dict[str, Any]) -> str:
    intent_id = _intent_id(data)
    raw = data.get("metadata") or {}
    if not DonationMetadata.is_donation(raw):
        logger.info("PaymentIntent without donation metadata ignored", extra={"pi_id": intent_id})
        return intent_id
    ledger.record_pending(
        db,
        transaction_id=intent_id,
        metadata=DonationMetadata.from_gateway(raw),
        source=WEBHOOK_SOURCE,
    )
    return intent_id


def _on_intent_succeeded(db: Session, data: dict[str, Any]) -> str:
    intent_id = _intent_id(data)
    raw = data.get("metadata") or {}
    metadata = DonationMetadata.from_gateway(raw) if DonationMetadata.is_donation(raw) else None
    result = ledger.reconcile_success(
        db, transaction_id=intent_id, metadata=metadata, source=WEBHOOK_SOURCE
    )
    if result is None:
        logger.info(
            "Succeeded PaymentIntent has no donation and no metadata; ignored",
            extra={"pi_id": intent_id},
        )
    return intent_id


def _on_intent_failed(db: Session, data: dict[str, Any]) -> str:
    intent_id = _intent_id(data)
    ledger.mark_failed(db, transaction_id=intent_id, source=WEBHOOK_SOURCE)
    return intent_id


def _on_session_completed(db: Session, gateway: "StripeGateway", data: dict[str, Any]) -> str | None:
    session_id = data.get("id")
    if not session_id:
        raise ValidationError("Checkout Session id is missing.", code="STRIPE_PAYLOAD_INCOMPLETE")

    # The event payload does not carry the expanded intent.
    session = gateway.retrieve_checkout_session(session_id)
    if not session.paid:
        logger.info(
            "Checkout session completed without payment; awaiting intent events",
            extra={"session_id": session_id, "payment_status": session.payment_status},
        )
        return session.payment_intent_id
    payments_service.reconcile_checkout_session(db, session, source=WEBHOOK_SOURCE)
    return session.payment_intent_id


def _dispatch(db: Session, gateway: "StripeGateway", event: "GatewayEvent") -> str | None:
    data = event.data_object
    if event.type == PAYMENT_INTENT_CREATED:
        return _on_intent_created(db, data)
    if event.type == PAYMENT_INTENT_SUCCEEDED:
        return _on_intent_succeeded(db, data)
    if event.type == PAYMENT_INTENT_FAILED:
        return _on_intent_failed(db, data)
    if event.type == CHECKOUT_SESSION_COMPLETED:
        return _on_session_completed(db, gateway, data)
    if event.type == CHECKOUT_SESSION_EXPIRED:
        logger.info("Checkout session expired", extra={"session_id": data.get("id")})
        return None
    logger.info("Unhandled Stripe event type", extra={"event_type": event.type, "event_id": event.id})
    return None


def handle_stripe_webhook(
    db: Session,
    gateway: "StripeGateway",
    payload: bytes,
    sig_header: str | None,
) -> dict[str, Any]:
    """Verify, record and apply one Stripe delivery.

    Signature problems raise ``SignatureError``. Anything that goes wrong
    afterwards rolls the delivery back, including its event-log row, and is
    raised as ``WebhookProcessingError`` so Stripe retries it.
    """

    event = gateway.construct_event(payload, sig_header)
    ack = {"received": True, "type": event.type, "id": event.id}
    logger.info("Stripe webhook received", extra={"event_type": event.type, "event_id": event.id})

    try:
        with atomic(db):
            record = _claim_event(db, gateway.provider, event)
            if record is None:
                logger.info(
                    "Stripe webhook already processed",
                    extra={"event_type": event.type, "event_id": event.id, "duplicate": True},
                )
                return ack
            record.transaction_id = _dispatch(db, gateway, event)
            record.processed_at = utcnow()
    except Exception as exc:
        logger.exception(
            "Stripe webhook processing failed",
            extra={"event_type": event.type, "event_id": event.id},
        )
        raise WebhookProcessingError(
            "Webhook processing failed.",
            details={"event_id": event.id, "event_type": event.type},
        ) from exc

    logger.info(
        "Stripe webhook processed",
        extra={"event_type": event.type, "event_id": event.id, "duplicate": False},
    )
    return ack


__all__ = ["handle_stripe_webhook"]
