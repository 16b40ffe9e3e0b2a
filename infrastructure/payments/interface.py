"""
Payment Provider Interface
===========================

Abstract base class defining the contract for money movement.
Settlement code only ever talks to this interface; Stripe (or the in-memory
mock) sits behind it.

Amounts cross this boundary as exact ``Decimal`` values in the major currency
unit. Providers convert to minor units themselves.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class PaymentStatus(str, Enum):
    """Payment status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass
class ChargeResult:
    """
    Outcome of charging a buyer.

    Attributes:
        charge_ref: Provider reference for the charge (e.g. a PaymentIntent id)
        status: SUCCEEDED, FAILED, or PROCESSING when the provider has not decided yet
        amount: Charged amount in the smallest currency unit
        currency: ISO currency code
        failure_code: Provider decline code, if any
        failure_message: Buyer-presentable decline message, if any
    """

    charge_ref: str
    status: PaymentStatus
    amount: int
    currency: str
    failure_code: Optional[str] = None
    failure_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCEEDED


@dataclass
class TransferResult:
    """
    Outcome of moving funds to a seller's connected account.

    Attributes:
        transfer_ref: Provider reference for the transfer
        status: SUCCEEDED or PROCESSING
        amount: Transferred amount in the smallest currency unit
        currency: ISO currency code
        destination: Connected account that received the funds
    """

    transfer_ref: str
    status: PaymentStatus
    amount: int
    currency: str
    destination: str

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCEEDED


class PaymentProviderInterface(ABC):
    """
    Abstract interface for payment provider operations.

    Concrete implementations:
        - StripeProvider: Stripe payment processing with Connect transfers
        - MockPaymentProvider: In-memory provider for tests and local development
    """

    @abstractmethod
    def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method_ref: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChargeResult:
        """
        Charge a buyer's payment method for the full order amount.

        Calling twice with the same idempotency key must return the original
        result and never charge the buyer a second time.

        Args:
            amount: Amount in the major currency unit
            currency: ISO currency code
            payment_method_ref: Opaque payment method reference (e.g. pm_...)
            idempotency_key: Stable key for this settlement attempt
            metadata: Custom data to attach to the charge

        Returns:
            ChargeResult describing the charge

        Raises:
            PaymentDeclined: The charge definitively failed
            PaymentTimeout: The outcome is unknown (network loss, timeout)
            PaymentException: Any other provider error
        """
        pass

    @abstractmethod
    def transfer(
        self,
        amount: Decimal,
        currency: str,
        destination_account: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TransferResult:
        """
        Transfer funds to a connected account (seller payout).

        Args:
            amount: Amount in the major currency unit
            currency: ISO currency code
            destination_account: Connected account id (e.g. acct_...)
            idempotency_key: Stable key for this transfer
            metadata: Optional metadata

        Returns:
            TransferResult describing the transfer

        Raises:
            PaymentDeclined: The transfer was rejected
            PaymentTimeout: The outcome is unknown
            PaymentException: Any other provider error
        """
        pass

    @abstractmethod
    def create_connected_account(self, email: str, country: str = "US") -> str:
        """
        Create a connected account able to receive transfers.

        Returns:
            The connected account id

        Raises:
            PaymentException: If account creation fails
        """
        pass


class PaymentException(Exception):
    """Base exception for payment operations."""

    def __init__(self, message: str = "", code: Optional[str] = None, reference: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.reference = reference


class PaymentDeclined(PaymentException):
    """The provider processed the request and refused it."""

    pass


class PaymentTimeout(PaymentException):
    """The provider did not answer; the operation may or may not have happened."""

    pass
