"""
Currency minor-unit helpers.

Amounts are stored and computed as ``Decimal`` in the major unit and only
converted to integer minor units at the payment-provider boundary.
"""

from decimal import Decimal, InvalidOperation

from payment_system.domain.exceptions import InvalidAmount


# Currencies whose smallest unit is the major unit (Stripe's zero-decimal list)
ZERO_DECIMAL_CURRENCIES = frozenset(
    ["bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga", "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf"]
)

THREE_DECIMAL_CURRENCIES = frozenset(["bhd", "jod", "kwd", "omr", "tnd"])


def minor_unit_exponent(currency: str) -> int:
    code = (currency or "").lower()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def quantum(currency: str) -> Decimal:
    """Smallest representable amount, e.g. Decimal('0.01') for USD."""
    return Decimal(1).scaleb(-minor_unit_exponent(currency))


def as_decimal(value) -> Decimal:
    """Coerce an amount to Decimal without ever passing through a binary float."""
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmount(f"Amount must be a decimal or string, not {type(value).__name__}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise InvalidAmount(f"Amount {value!r} is not a valid decimal") from e
    if not amount.is_finite():
        raise InvalidAmount(f"Amount {value!r} is not finite")
    return amount


def to_minor_units(amount, currency: str) -> int:
    """
    Convert a major-unit amount to integer minor units exactly.

    Raises:
        InvalidAmount: if the amount carries more precision than the currency allows
    """
    value = as_decimal(amount)
    minor = value.scaleb(minor_unit_exponent(currency))
    if minor != minor.to_integral_value():
        raise InvalidAmount(f"Amount {value} has more precision than {currency.upper()} allows")
    return int(minor)


def from_minor_units(value: int, currency: str) -> Decimal:
    """Convert provider minor units back to a major-unit amount, e.g. 1999 USD -> Decimal('19.99')."""
    return Decimal(int(value)).scaleb(-minor_unit_exponent(currency)).quantize(quantum(currency))
