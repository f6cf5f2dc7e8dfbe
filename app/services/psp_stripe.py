"""Stripe SDK wrapper for donation payments.

:class:`StripeGateway` is built once at startup and injected where needed. It
returns plain dataclasses so the rest of the application never handles
``stripe`` objects directly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

import stripe

from app.config import Settings, get_settings
from app.services.payment_metadata import DonationMetadata
from app.utils.errors import GatewayError, SignatureError

logger = logging.getLogger(__name__)

INTENT_SUCCEEDED = "succeeded"
INTENT_CANCELED = "canceled"
SESSION_PAID = "paid"


def _to_minor_units(amount: int) -> int:
    """Whole currency units to the smallest unit expected by Stripe (rupees -> paise)."""

    return int(amount) * 100


def _plain(value: Any) -> Any:
    """Recursively turn Stripe objects into builtin dicts and lists."""

    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


@dataclass(frozen=True)
class GatewayIntent:
    id: str
    status: str
    amount: int
    currency: str
    client_secret: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == INTENT_SUCCEEDED

    @classmethod
    def from_stripe(cls, obj: Mapping[str, Any]) -> "GatewayIntent":
        data = _plain(obj)
        return cls(
            id=data["id"],
            status=data.get("status") or "",
            amount=int(data.get("amount") or 0),
            currency=data.get("currency") or "",
            client_secret=data.get("client_secret"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class GatewaySession:
    id: str
    payment_status: str
    url: str | None = None
    payment_intent_id: str | None = None
    payment_intent: GatewayIntent | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def paid(self) -> bool:
        return self.payment_status == SESSION_PAID

    @property
    def donation_metadata(self) -> dict[str, str]:
        """Session metadata, falling back to the one copied onto its intent."""

        if DonationMetadata.is_donation(self.metadata):
            return self.metadata
        if self.payment_intent is not None:
            return self.payment_intent.metadata
        return self.metadata

    @classmethod
    def from_stripe(cls, obj: Mapping[str, Any]) -> "GatewaySession":
        data = _plain(obj)
        raw_intent = data.get("payment_intent")
        intent: GatewayIntent | None = None
        intent_id: str | None = None
        if isinstance(raw_intent, Mapping):
            intent = GatewayIntent.from_stripe(raw_intent)
            intent_id = intent.id
        elif raw_intent:
            intent_id = str(raw_intent)
        return cls(
            id=data["id"],
            payment_status=data.get("payment_status") or "",
            url=data.get("url"),
            payment_intent_id=intent_id,
            payment_intent=intent,
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class GatewayEvent:
    id: str
    type: str
    data_object: dict[str, Any]


class StripeGateway:
    """Card-payment gateway backed by a dedicated ``stripe.StripeClient``."""

    provider = "stripe"

    def __init__(self, settings: Settings) -> None:
        if not settings.STRIPE_SECRET_KEY:
            raise RuntimeError("Stripe secret key is missing; configure STRIPE_SECRET_KEY.")
        self.currency = settings.PAYMENT_CURRENCY
        self._webhook_secret = settings.STRIPE_WEBHOOK_SECRET
        self._client = stripe.StripeClient(settings.STRIPE_SECRET_KEY)

    @classmethod
    def from_env(cls) -> "StripeGateway":
        """Instantiate a gateway using the cached application settings."""

        return cls(get_settings())

    def create_payment_intent(self, *, amount: int, metadata: DonationMetadata) -> GatewayIntent:
        """Open a PaymentIntent for ``amount`` whole units carrying the donation metadata."""

        try:
            intent = self._client.payment_intents.create(
                params={
                    "amount": _to_minor_units(amount),
                    "currency": self.currency,
                    "metadata": metadata.to_gateway(),
                    "automatic_payment_methods": {"enabled": True},
                }
            )
        except stripe.StripeError as exc:
            logger.error("Stripe PaymentIntent creation failed", extra={"stripe_error": str(exc)})
            raise GatewayError("Could not create payment intent.", code="STRIPE_INTENT_FAILED") from exc
        return GatewayIntent.from_stripe(intent)

    def retrieve_payment_intent(self, intent_id: str) -> GatewayIntent:
        try:
            intent = self._client.payment_intents.retrieve(intent_id)
        except stripe.StripeError as exc:
            logger.error(
                "Stripe PaymentIntent retrieval failed",
                extra={"pi_id": intent_id, "stripe_error": str(exc)},
            )
            raise GatewayError("Could not retrieve payment intent.", code="STRIPE_INTENT_LOOKUP_FAILED") from exc
        return GatewayIntent.from_stripe(intent)

    def create_checkout_session(
        self,
        *,
        amount: int,
        title: str,
        metadata: DonationMetadata,
        success_url: str,
        cancel_url: str,
    ) -> GatewaySession:
        """Create a hosted Checkout Session; metadata goes on the session and its intent."""

        gateway_metadata = metadata.to_gateway()
        try:
            session = self._client.checkout.sessions.create(
                params={
                    "mode": "payment",
                    "line_items": [
                        {
                            "price_data": {
                                "currency": self.currency,
                                "product_data": {"name": f"Donation to {title}"},
                                "unit_amount": _to_minor_units(amount),
                            },
                            "quantity": 1,
                        }
                    ],
                    "metadata": gateway_metadata,
                    "payment_intent_data": {"metadata": gateway_metadata},
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                }
            )
        except stripe.StripeError as exc:
            logger.error("Stripe Checkout Session creation failed", extra={"stripe_error": str(exc)})
            raise GatewayError("Could not create checkout session.", code="STRIPE_SESSION_FAILED") from exc
        return GatewaySession.from_stripe(session)

    def retrieve_checkout_session(self, session_id: str) -> GatewaySession:
        """Fetch a Checkout Session with its PaymentIntent expanded."""

        try:
            session = self._client.checkout.sessions.retrieve(
                session_id, params={"expand": ["payment_intent"]}
            )
        except stripe.StripeError as exc:
            logger.error(
                "Stripe Checkout Session retrieval failed",
                extra={"session_id": session_id, "stripe_error": str(exc)},
            )
            raise GatewayError("Could not retrieve checkout session.", code="STRIPE_SESSION_LOOKUP_FAILED") from exc
        return GatewaySession.from_stripe(session)

    def construct_event(self, payload: bytes, sig_header: str | None) -> GatewayEvent:
        """Verify the raw webhook body against the signing secret and parse it."""

        if not self._webhook_secret:
            raise RuntimeError(
                "Stripe webhook secret is missing; configure STRIPE_WEBHOOK_SECRET for verification."
            )
        if not sig_header:
            raise SignatureError("Stripe-Signature header is required.", code="STRIPE_SIGNATURE_MISSING")
        try:
            event = self._client.construct_event(payload, sig_header, self._webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise SignatureError("Invalid Stripe signature.", code="STRIPE_SIGNATURE_INVALID") from exc
        except ValueError as exc:
            raise SignatureError("Invalid Stripe webhook payload.", code="STRIPE_EVENT_INVALID") from exc

        data = _plain(event)
        return GatewayEvent(
            id=data.get("id") or "",
            type=data.get("type") or "",
            data_object=(data.get("data") or {}).get("object") or {},
        )


__all__ = [
    "GatewayEvent",
    "GatewayIntent",
    "GatewaySession",
    "StripeGateway",
    "INTENT_SUCCEEDED",
    "INTENT_CANCELED",
    "SESSION_PAID",
]
