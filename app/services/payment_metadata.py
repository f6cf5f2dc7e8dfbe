"""Typed donation metadata carried by gateway intents and sessions.

The gateway stores metadata as a flat ``str -> str`` map. Everything else in
the code base works with :class:`DonationMetadata`; conversion happens only
in :meth:`DonationMetadata.to_gateway` and :meth:`DonationMetadata.from_gateway`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from app.utils.errors import ValidationError

CAUSE_ID = "causeId"
DONOR_ID = "donorId"
NET_AMOUNT = "netAmount"
PLATFORM_FEE = "platformFee"
IS_ANONYMOUS = "isAnonymous"
MESSAGE = "message"

_REQUIRED_KEYS = (CAUSE_ID, DONOR_ID, NET_AMOUNT, PLATFORM_FEE)
MAX_MESSAGE_LENGTH = 500


@dataclass(frozen=True)
class DonationMetadata:
    cause_id: int
    donor_id: int
    net_amount: int
    platform_fee: int
    is_anonymous: bool = False
    message: str | None = None

    @property
    def total_amount(self) -> int:
        return self.net_amount + self.platform_fee

    def to_gateway(self) -> dict[str, str]:
        data = {
            CAUSE_ID: str(self.cause_id),
            DONOR_ID: str(self.donor_id),
            NET_AMOUNT: str(self.net_amount),
            PLATFORM_FEE: str(self.platform_fee),
            IS_ANONYMOUS: "true" if self.is_anonymous else "false",
        }
        if self.message:
            data[MESSAGE] = self.message[:MAX_MESSAGE_LENGTH]
        return data

    @classmethod
    def from_gateway(cls, raw: Mapping[str, Any] | None) -> "DonationMetadata":
        """Parse gateway metadata, raising ``ValidationError`` when it is incomplete."""

        raw = raw or {}
        missing = [key for key in _REQUIRED_KEYS if not raw.get(key)]
        if missing:
            raise ValidationError(
                "Payment metadata is missing donation fields.",
                code="PAYMENT_METADATA_INCOMPLETE",
                details={"missing": missing},
            )
        try:
            cause_id = int(raw[CAUSE_ID])
            donor_id = int(raw[DONOR_ID])
            net_amount = int(raw[NET_AMOUNT])
            platform_fee = int(raw[PLATFORM_FEE])
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                "Payment metadata holds non-numeric donation fields.",
                code="PAYMENT_METADATA_INVALID",
            ) from exc

        message = raw.get(MESSAGE) or None
        return cls(
            cause_id=cause_id,
            donor_id=donor_id,
            net_amount=net_amount,
            platform_fee=platform_fee,
            is_anonymous=str(raw.get(IS_ANONYMOUS, "false")).lower() == "true",
            message=message,
        )

    @classmethod
    def is_donation(cls, raw: Mapping[str, Any] | None) -> bool:
        """Whether ``raw`` carries every field needed to record a donation.

        Metadata holding only ``causeId``/``donorId`` has no amounts and cannot
        create a ledger entry; callers fall back to the stored donation, if any.
        """

        return bool(raw) and all(raw.get(key) for key in _REQUIRED_KEYS)

    @staticmethod
    def donor_id_of(raw: Mapping[str, Any] | None) -> int | None:
        try:
            return int((raw or {})[DONOR_ID])
        except (KeyError, TypeError, ValueError):
            return None


__all__ = ["DonationMetadata", "MAX_MESSAGE_LENGTH"]
