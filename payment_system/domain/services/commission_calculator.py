"""
Commission Calculator

Pure computation of the platform/seller revenue split for one order.
The commission is rounded to the currency's minor unit with banker's
rounding and the payout is derived by subtraction, so the two parts always
add back up to the order total.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal

from django.conf import settings

from payment_system.domain.exceptions import InvalidAmount, InvalidRate
from payment_system.domain.services.currency import as_decimal, quantum


DEFAULT_COMMISSION_RATE = Decimal("0.10")


@dataclass(frozen=True)
class CommissionSplit:
    total_amount: Decimal
    platform_commission: Decimal
    seller_payout: Decimal
    commission_rate: Decimal
    currency: str


def validate_rate(commission_rate) -> Decimal:
    if isinstance(commission_rate, (bool, float)):
        raise InvalidRate(f"Commission rate must be a decimal or string, not {type(commission_rate).__name__}")
    try:
        rate = as_decimal(commission_rate)
    except InvalidAmount as e:
        raise InvalidRate(f"Commission rate {commission_rate!r} is not a valid decimal") from e
    if rate < 0 or rate >= 1:
        raise InvalidRate(f"Commission rate {rate} must be in [0, 1)")
    return rate


def get_commission_rate() -> Decimal:
    """Per-deployment commission rate from settings.SETTLEMENT["COMMISSION_RATE"]."""
    configured = getattr(settings, "SETTLEMENT", {}).get("COMMISSION_RATE", DEFAULT_COMMISSION_RATE)
    return validate_rate(configured)


def calculate_commission_split(total_amount, commission_rate, currency: str = "usd") -> CommissionSplit:
    """
    Split an order total into platform commission and seller payout.

    Args:
        total_amount: Positive amount with at most the currency's minor-unit precision
        commission_rate: Fraction retained by the platform, in [0, 1)
        currency: ISO currency code, decides the rounding quantum

    Returns:
        CommissionSplit with platform_commission + seller_payout == total_amount

    Raises:
        InvalidAmount: total_amount <= 0, not a decimal, or too precise
        InvalidRate: commission_rate outside [0, 1)

    Example:
        >>> calculate_commission_split(Decimal("19.99"), Decimal("0.10"))
        CommissionSplit(total_amount=Decimal('19.99'), platform_commission=Decimal('2.00'),
                        seller_payout=Decimal('17.99'), ...)
    """
    amount = as_decimal(total_amount)
    if amount <= 0:
        raise InvalidAmount(f"Order total must be positive, got {amount}")

    step = quantum(currency)
    if amount != amount.quantize(step):
        raise InvalidAmount(f"Order total {amount} has more precision than {currency.upper()} allows")
    amount = amount.quantize(step)

    rate = validate_rate(commission_rate)

    platform_commission = (amount * rate).quantize(step, rounding=ROUND_HALF_EVEN)
    seller_payout = amount - platform_commission

    return CommissionSplit(
        total_amount=amount,
        platform_commission=platform_commission,
        seller_payout=seller_payout,
        commission_rate=rate,
        currency=currency.lower(),
    )
