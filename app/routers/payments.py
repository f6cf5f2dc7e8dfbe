"""Donation payment endpoints: intents, checkout sessions, confirmations, webhooks."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.donor import DonorProfile
from app.schemas.donation import DonationRead
from app.schemas.payment import (
    CheckoutSessionCreate,
    CheckoutSessionRead,
    DonationEnvelope,
    GatewayPaymentRead,
    PaymentConfirm,
    PaymentIntentCreate,
    PaymentIntentRead,
    PaymentVerifyRead,
    SessionVerifyRead,
    WebhookAck,
    WebhookStatusRead,
)
from app.security import Principal, require_donor, require_principal
from app.services import intents as intents_service
from app.services import payments as payments_service
from app.services import psp_webhooks
from app.services.psp_stripe import StripeGateway
from app.utils.errors import error_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def get_payment_gateway(request: Request) -> StripeGateway:
    """Gateway built at startup; 503 when Stripe is not configured."""

    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_response("STRIPE_DISABLED", "Stripe integration is disabled."),
        )
    return gateway


@router.post("/intent", response_model=PaymentIntentRead, status_code=status.HTTP_200_OK)
def create_payment_intent(
    payload: PaymentIntentCreate,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    donor: DonorProfile = Depends(require_donor),
) -> PaymentIntentRead:
    handle = intents_service.create_payment_intent(
        db,
        gateway,
        cause_id=payload.cause_id,
        donor=donor,
        gross_amount=payload.amount,
        is_anonymous=payload.is_anonymous,
        message=payload.message,
    )
    return PaymentIntentRead(
        client_secret=handle.client_secret,
        transaction_id=handle.transaction_id,
        platform_fee=handle.fees.platform_fee,
        net_amount=handle.fees.net_amount,
        total_amount=handle.fees.total_amount,
    )


@router.post("/confirm", response_model=DonationEnvelope)
def confirm_payment(
    payload: PaymentConfirm,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    donor: DonorProfile = Depends(require_donor),
) -> DonationEnvelope:
    """Record the donation once the frontend reports a successful card payment."""

    donation = payments_service.confirm_payment(
        db,
        gateway,
        donor=donor,
        transaction_id=payload.transaction_id,
        cause_id=payload.cause_id,
        message=payload.message,
        is_anonymous=payload.is_anonymous,
    )
    return DonationEnvelope(donation=DonationRead.model_validate(donation))


@router.post("/checkout-session", response_model=CheckoutSessionRead)
def create_checkout_session(
    payload: CheckoutSessionCreate,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    donor: DonorProfile = Depends(require_donor),
) -> CheckoutSessionRead:
    handle = intents_service.create_checkout_session(
        db,
        gateway,
        cause_id=payload.cause_id,
        donor=donor,
        gross_amount=payload.amount,
        is_anonymous=payload.is_anonymous,
        message=payload.message,
        success_url=payload.success_url,
        cancel_url=payload.cancel_url,
    )
    return CheckoutSessionRead(session_id=handle.session_id, url=handle.url)


@router.get("/verify-session/{session_id}", response_model=SessionVerifyRead)
def verify_checkout_session(
    session_id: str,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
) -> SessionVerifyRead:
    """Public: polled by the payment-success page after the Stripe redirect."""

    donation = payments_service.verify_checkout_session(db, gateway, session_id)
    return SessionVerifyRead(success=True, donation=DonationRead.model_validate(donation))


@router.get("/verify/{transaction_id}", response_model=PaymentVerifyRead)
def verify_payment(
    transaction_id: str,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    principal: Principal = Depends(require_principal),
) -> PaymentVerifyRead:
    snapshot = payments_service.describe_payment(db, gateway, transaction_id, principal=principal)
    intent = snapshot.intent
    return PaymentVerifyRead(
        success=snapshot.success,
        payment=GatewayPaymentRead(
            id=intent.id, status=intent.status, amount=intent.amount, currency=intent.currency
        ),
        donation=DonationRead.model_validate(snapshot.donation) if snapshot.donation else None,
    )


@router.get("/webhook-status/{transaction_id}", response_model=WebhookStatusRead)
def webhook_status(
    transaction_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_principal),
) -> WebhookStatusRead:
    state, donation = payments_service.webhook_status(db, transaction_id, principal=principal)
    return WebhookStatusRead(
        status=state,
        donation=DonationRead.model_validate(donation) if donation else None,
    )


@router.post("/webhook", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
) -> WebhookAck:
    """Stripe callback; the raw body is needed for signature verification.

    Only the body is read on the event loop. Verification and the ledger work
    block on Stripe and the database, so they run in the threadpool.
    """

    payload = await request.body()
    try:
        ack = await run_in_threadpool(
            psp_webhooks.handle_stripe_webhook,
            db,
            gateway,
            payload,
            request.headers.get("Stripe-Signature"),
        )
    except RuntimeError as exc:  # configuration issue
        logger.error("Stripe webhook configuration error", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_response("STRIPE_NOT_CONFIGURED", str(exc)),
        ) from exc
    return WebhookAck(**ack)


__all__ = ["router", "get_payment_gateway"]
