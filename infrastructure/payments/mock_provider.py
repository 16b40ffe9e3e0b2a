"""
Mock Payment Provider
=====================

In-memory implementation of PaymentProviderInterface for testing and local
development. Honours idempotency keys the way Stripe does: replaying a key
returns the stored result instead of moving money again, and a declined
charge or transfer stays declined for its key.

Failures are scripted per payment method or destination:

    provider = MockPaymentProvider()
    provider.decline_payment_method("pm_card_declined", code="card_declined")
    provider.fail_transfers_to("acct_broken", times=2)
    provider.time_out_next_charge()
"""

import logging
import threading
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from payment_system.domain.services.currency import to_minor_units

from .interface import (
    ChargeResult,
    PaymentDeclined,
    PaymentProviderInterface,
    PaymentStatus,
    PaymentTimeout,
    TransferResult,
)

logger = logging.getLogger(__name__)


class MockPaymentProvider(PaymentProviderInterface):
    """Payment provider that keeps every charge and transfer in memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self.charges: Dict[str, ChargeResult] = {}
        self.transfers: Dict[str, TransferResult] = {}
        self.declined_transfers: Dict[str, PaymentDeclined] = {}
        self.accounts: List[str] = []
        self.calls: List[Tuple[str, str]] = []

        self._declined_methods: Dict[str, Tuple[str, str]] = {}
        self._processing_methods: set = set()
        self._failing_destinations: Dict[str, int] = {}
        self._charge_timeouts = 0
        self._transfer_timeouts = 0

    # ------------------------------------------------------------------
    # Scripting helpers
    # ------------------------------------------------------------------

    def decline_payment_method(
        self, payment_method_ref: str, code: str = "card_declined", message: str = "Your card was declined."
    ):
        self._declined_methods[payment_method_ref] = (code, message)

    def leave_processing(self, payment_method_ref: str):
        """Charges with this method stay PROCESSING until release_processing() is called."""
        self._processing_methods.add(payment_method_ref)

    def release_processing(self, payment_method_ref: str):
        self._processing_methods.discard(payment_method_ref)

    def fail_transfers_to(self, destination: str, times: int = 1):
        self._failing_destinations[destination] = times

    def time_out_next_charge(self, times: int = 1):
        self._charge_timeouts += times

    def time_out_next_transfer(self, times: int = 1):
        self._transfer_timeouts += times

    @property
    def successful_charges(self) -> List[ChargeResult]:
        return [charge for charge in self.charges.values() if charge.succeeded]

    # ------------------------------------------------------------------
    # PaymentProviderInterface
    # ------------------------------------------------------------------

    def charge(
        self,
        amount: Decimal,
        currency: str,
        payment_method_ref: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChargeResult:
        with self._lock:
            self.calls.append(("charge", idempotency_key))

            if self._charge_timeouts:
                self._charge_timeouts -= 1
                # The charge went through upstream; only the response was lost
                self._store_charge(amount, currency, payment_method_ref, idempotency_key, metadata)
                raise PaymentTimeout("Simulated charge timeout", code="timeout")

            existing = self.charges.get(idempotency_key)
            if existing is not None:
                if existing.status == PaymentStatus.PROCESSING and payment_method_ref not in self._processing_methods:
                    existing.status = PaymentStatus.SUCCEEDED
                logger.info(f"[MOCK PAYMENT] Replayed charge {existing.charge_ref} for key {idempotency_key}")
                return existing

            if payment_method_ref in self._declined_methods:
                code, message = self._declined_methods[payment_method_ref]
                charge_ref = f"pi_mock_{uuid.uuid4().hex[:16]}"
                self.charges[idempotency_key] = ChargeResult(
                    charge_ref=charge_ref,
                    status=PaymentStatus.FAILED,
                    amount=to_minor_units(amount, currency),
                    currency=currency.lower(),
                    failure_code=code,
                    failure_message=message,
                    metadata=dict(metadata or {}),
                )
                raise PaymentDeclined(message, code=code, reference=charge_ref)

            return self._store_charge(amount, currency, payment_method_ref, idempotency_key, metadata)

    def transfer(
        self,
        amount: Decimal,
        currency: str,
        destination_account: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TransferResult:
        with self._lock:
            self.calls.append(("transfer", idempotency_key))

            if self._transfer_timeouts:
                self._transfer_timeouts -= 1
                raise PaymentTimeout("Simulated transfer timeout", code="timeout")

            existing = self.transfers.get(idempotency_key)
            if existing is not None:
                return existing
            declined = self.declined_transfers.get(idempotency_key)
            if declined is not None:
                logger.info(f"[MOCK PAYMENT] Replayed declined transfer for key {idempotency_key}")
                raise declined

            remaining_failures = self._failing_destinations.get(destination_account, 0)
            if remaining_failures:
                self._failing_destinations[destination_account] = remaining_failures - 1
                declined = PaymentDeclined("Simulated transfer failure", code="transfer_failed")
                self.declined_transfers[idempotency_key] = declined
                raise declined

            result = TransferResult(
                transfer_ref=f"tr_mock_{uuid.uuid4().hex[:16]}",
                status=PaymentStatus.SUCCEEDED,
                amount=to_minor_units(amount, currency),
                currency=currency.lower(),
                destination=destination_account,
            )
            self.transfers[idempotency_key] = result
            logger.info(f"[MOCK PAYMENT] Transfer {result.transfer_ref} of {amount} {currency} to {destination_account}")
            return result

    def create_connected_account(self, email: str, country: str = "US") -> str:
        account_id = f"acct_mock{uuid.uuid4().hex[:12]}"
        self.accounts.append(account_id)
        return account_id

    def _store_charge(self, amount, currency, payment_method_ref, idempotency_key, metadata) -> ChargeResult:
        existing = self.charges.get(idempotency_key)
        if existing is not None:
            return existing

        status = (
            PaymentStatus.PROCESSING if payment_method_ref in self._processing_methods else PaymentStatus.SUCCEEDED
        )
        result = ChargeResult(
            charge_ref=f"pi_mock_{uuid.uuid4().hex[:16]}",
            status=status,
            amount=to_minor_units(amount, currency),
            currency=currency.lower(),
            metadata=dict(metadata or {}),
        )
        self.charges[idempotency_key] = result
        logger.info(f"[MOCK PAYMENT] Charge {result.charge_ref} of {amount} {currency} status {status.value}")
        return result
