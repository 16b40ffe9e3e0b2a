class SettlementError(Exception):
    """Base class for settlement exceptions."""

    code = "settlement_error"


class InvalidAmount(SettlementError):
    """Raised when an order amount is not a positive, currency-exact decimal."""

    code = "invalid_amount"


class InvalidRate(SettlementError):
    """Raised when the commission rate is outside [0, 1)."""

    code = "invalid_rate"


class ChargeFailed(SettlementError):
    """The buyer's payment method was not charged. Buyer-facing and recoverable."""

    code = "charge_failed"


class TransferFailed(SettlementError):
    """The buyer was charged but the seller payout failed. Operator-actionable."""

    code = "transfer_failed"


class TransferPending(SettlementError):
    """The buyer was charged but the seller has no payout destination yet."""

    code = "transfer_pending"


class UnknownOutcome(SettlementError):
    """A provider call timed out; the money may or may not have moved."""

    code = "unknown_outcome"


class SettlementStateError(SettlementError):
    """Raised on an illegal settlement ledger transition."""

    code = "settlement_state_error"
