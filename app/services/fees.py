"""Platform fee calculation for donations."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from app.config import get_settings
from app.utils.errors import ValidationError


@dataclass(frozen=True)
class FeeBreakdown:
    """Split of a gross donation; ``gross_amount == platform_fee + net_amount``."""

    gross_amount: int
    platform_fee: int
    net_amount: int

    @property
    def total_amount(self) -> int:
        return self.net_amount + self.platform_fee


def compute_fee(
    gross_amount: int,
    *,
    rate: Decimal | None = None,
    minimum: int | None = None,
) -> FeeBreakdown:
    """Derive the platform fee (rounded half up) and the net amount credited to the cause.

    Raises ``ValidationError`` when the amount is not a whole number or is
    below the configured minimum donation.
    """

    settings = get_settings()
    rate = settings.PLATFORM_FEE_RATE if rate is None else rate
    minimum = settings.MIN_DONATION_AMOUNT if minimum is None else minimum

    if isinstance(gross_amount, bool) or not isinstance(gross_amount, int):
        raise ValidationError(
            "Donation amount must be a whole number.",
            code="INVALID_AMOUNT",
            details={"amount": str(gross_amount)},
        )
    if gross_amount < minimum:
        raise ValidationError(
            f"Minimum donation amount is {minimum}.",
            code="AMOUNT_BELOW_MINIMUM",
            details={"amount": gross_amount, "minimum": minimum},
        )

    fee = (Decimal(gross_amount) * Decimal(rate)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    platform_fee = int(fee)
    return FeeBreakdown(
        gross_amount=gross_amount,
        platform_fee=platform_fee,
        net_amount=gross_amount - platform_fee,
    )


__all__ = ["FeeBreakdown", "compute_fee"]
