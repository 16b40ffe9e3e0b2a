"""
SettlementService - Orchestration Layer for Order Settlement

Charges the buyer for an order's full total, then transfers the seller's
share to their connected account. Every attempt is recorded in the
settlement ledger before money moves, so a repeated request never charges
twice and an interrupted one can be finished by the reconciliation sweep.

Flow for one attempt:
    1. Lock the order, check for an existing record, open attempt n (processing)
    2. Charge the buyer (idempotency key settlement-{order}-{n}-charge)
    3. Transfer the payout (idempotency key settlement-{order}-{n}-transfer),
       retried with backoff; otherwise queue it for reconciliation
"""

import logging
import time
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count, Sum
from django.utils import timezone
from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from infrastructure.events import get_event_bus
from infrastructure.observability.tracing import add_span_attributes, tracer
from infrastructure.payments.interface import (
    PaymentDeclined,
    PaymentException,
    PaymentProviderInterface,
    PaymentStatus,
    PaymentTimeout,
)
from marketplace.models import Order, SellerAccount
from marketplace.services.base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok
from payment_system.domain.events.definitions import (
    SettlementChargeFailed,
    SettlementCompleted,
    SettlementPayoutDeferred,
)
from payment_system.domain.exceptions import InvalidAmount, InvalidRate, TransferFailed, TransferPending, UnknownOutcome
from payment_system.domain.models import ReconciliationEntry, SettlementRecord
from payment_system.domain.services.alerts import (
    REASON_CHARGE_AMOUNT_MISMATCH,
    REASON_TRANSFER_FAILED,
    raise_operator_alert,
)
from payment_system.domain.services.commission_calculator import calculate_commission_split, get_commission_rate
from payment_system.domain.services.currency import from_minor_units
from payment_system.infra.observability.metrics import (
    charge_volume_total,
    payout_volume_total,
    settlement_duration,
    settlements_total,
)
from utils.logging_utils import mask_value
from utils.transaction_utils import retry_on_deadlock


logger = logging.getLogger(__name__)

DEFAULT_MAX_TRANSFER_ATTEMPTS = 3

# Buyer-facing messages for common decline codes
DECLINE_MESSAGES = {
    "card_declined": "Your card was declined. Please use a different payment method.",
    "insufficient_funds": "Your card has insufficient funds. Please use a different payment method.",
    "expired_card": "Your card has expired. Please use a different payment method.",
    "incorrect_cvc": "Your card's security code is incorrect.",
    "processing_error": "An error occurred while processing your card. Please try again.",
    "authentication_required": "Your bank requires additional authentication for this payment.",
}
DEFAULT_DECLINE_MESSAGE = "Your payment could not be completed. Please use a different payment method."


@dataclass
class SettlementOutcome:
    """What happened to one settlement request."""

    record: SettlementRecord
    replayed: bool = False
    requires_attention: bool = False
    message: str = ""


def charge_idempotency_key(order_id, attempt_number: int) -> str:
    return f"settlement-{order_id}-{attempt_number}-charge"


def decline_message(failure_code: Optional[str]) -> str:
    return DECLINE_MESSAGES.get(failure_code or "", DEFAULT_DECLINE_MESSAGE)


# Replays must send identical parameters, so metadata is derived from the record only
def charge_metadata(record) -> dict:
    return {
        "order_id": str(record.order_id),
        "seller_id": str(record.order.seller_id),
        "attempt": str(record.attempt_number),
        "platform_commission": str(record.platform_commission),
        "seller_payout": str(record.seller_payout),
    }


def transfer_metadata(record) -> dict:
    return {
        "order_id": str(record.order_id),
        "seller_id": str(record.order.seller_id),
        "settlement_id": str(record.id),
    }


class SettlementService(BaseService):
    """
    Service for settling marketplace orders.

    Responsibilities:
    - Compute the commission split for an order
    - Open a ledger attempt and charge the buyer exactly once per attempt
    - Pay out the seller, or queue the payout for reconciliation
    - Update order status and publish settlement events

    Dependencies:
    - PaymentProviderInterface: Stripe or the in-memory mock
    - EventBus: settlement events and operator alerts
    - OrderService: audited order status transitions
    """

    def __init__(
        self,
        payment_provider: PaymentProviderInterface = None,
        event_bus=None,
        commission_rate=None,
        order_service=None,
    ):
        super().__init__()
        if payment_provider is None:
            from infrastructure.container import container

            payment_provider = container.payment()
        self.payment_provider = payment_provider
        self.event_bus = event_bus or get_event_bus()
        self.commission_rate = commission_rate

        if order_service is None:
            from marketplace.services import OrderService

            order_service = OrderService(event_bus=self.event_bus)
        self.order_service = order_service

        config = getattr(settings, "SETTLEMENT", {})
        self.max_transfer_attempts = int(config.get("MAX_TRANSFER_ATTEMPTS", DEFAULT_MAX_TRANSFER_ATTEMPTS))
        self.transfer_wait_min, self.transfer_wait_max = config.get("TRANSFER_RETRY_WAIT_SECONDS", (1, 10))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @BaseService.log_performance
    def settle_order(
        self, order_id, seller_account: SellerAccount, payment_method_ref: str
    ) -> ServiceResult[SettlementOutcome]:
        """
        Settle an order: charge the buyer, then pay out the seller.

        Args:
            order_id: Order to settle
            seller_account: The order seller's payout account; must belong to the order's seller
            payment_method_ref: Opaque payment method reference (e.g. pm_...)

        Returns:
            ServiceResult[SettlementOutcome]. ok=True whenever the buyer was charged,
            even if the payout needs operator attention. Failures carry an error code
            (charge_failed, unknown_outcome, settlement_in_progress, ...) and, once a
            ledger record exists, the SettlementOutcome as value.
        """
        started = time.monotonic()
        with tracer.start_as_current_span("settlement.settle_order") as span:
            span.set_attribute("order.id", str(order_id))
            try:
                result = self._settle(order_id, seller_account, payment_method_ref)
            finally:
                settlement_duration.observe(time.monotonic() - started)
            add_span_attributes(span, result_ok=result.ok, result_error=result.error or "")
            return result

    def _settle(self, order_id, seller_account, payment_method_ref) -> ServiceResult[SettlementOutcome]:
        opened = self._open_attempt(order_id, seller_account, payment_method_ref)
        if not isinstance(opened, SettlementRecord):
            return opened

        record = opened
        self.logger.info(
            f"Settling order {record.order_id} attempt {record.attempt_number}: "
            f"total={record.total_amount} commission={record.platform_commission} "
            f"payout={record.seller_payout} {record.currency.upper()} "
            f"method={mask_value(payment_method_ref)}"
        )

        charge_error = self._charge(record, payment_method_ref, seller_account)
        if charge_error is not None:
            return charge_error

        return self.pay_out(record, seller_account)

    def get_settlement(self, order_id) -> ServiceResult[SettlementRecord]:
        """Latest settlement attempt for an order."""
        try:
            record = SettlementRecord.objects.filter(order_id=order_id).order_by("-attempt_number").first()
        except ValidationError:
            record = None
        if record is None:
            return service_err(ErrorCodes.SETTLEMENT_NOT_FOUND, f"No settlement for order {order_id}")
        return service_ok(record)

    def list_attempts(self, order_id) -> ServiceResult[List[SettlementRecord]]:
        try:
            return service_ok(list(SettlementRecord.objects.filter(order_id=order_id).order_by("attempt_number")))
        except ValidationError:
            return service_err(ErrorCodes.ORDER_NOT_FOUND, f"Order {order_id} not found")

    def revenue_summary(self, since=None) -> ServiceResult[List[dict]]:
        """
        Platform revenue per currency over every attempt that charged the buyer.

        Args:
            since: Optional datetime; only attempts created at or after it count

        Returns:
            ServiceResult with one row per currency: platform_commission, gross_volume,
            seller_payouts, orders_settled, sellers
        """
        queryset = SettlementRecord.objects.filter(outcome__in=SettlementRecord.TERMINAL_CHARGED_OUTCOMES)
        if since is not None:
            queryset = queryset.filter(created_at__gte=since)

        rows = (
            queryset.values("currency")
            .annotate(
                platform_commission=Sum("platform_commission"),
                gross_volume=Sum("total_amount"),
                seller_payouts=Sum("seller_payout"),
                orders_settled=Count("order", distinct=True),
                sellers=Count("order__seller", distinct=True),
            )
            .order_by("currency")
        )
        return service_ok(list(rows))

    # ------------------------------------------------------------------
    # Attempt lifecycle
    # ------------------------------------------------------------------

    @retry_on_deadlock(max_retries=2)
    def _open_attempt(self, order_id, seller_account, payment_method_ref):
        """
        Return the new processing SettlementRecord, or a ServiceResult when no
        charge should be made (validation failure, replay, attempt in flight).
        """
        if not payment_method_ref or not str(payment_method_ref).strip():
            return service_err(ErrorCodes.VALIDATION_ERROR, "A payment method is required")

        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(id=order_id)
            except (Order.DoesNotExist, ValidationError):
                return service_err(ErrorCodes.ORDER_NOT_FOUND, f"Order {order_id} not found")

            if seller_account is None or seller_account.seller_id != order.seller_id:
                self.logger.warning(f"Seller account mismatch for order {order.id}")
                return service_err(ErrorCodes.PERMISSION_DENIED, "Seller account does not belong to the order's seller")

            latest = order.settlement_records.order_by("-attempt_number").first()
            if latest is not None:
                if latest.outcome in SettlementRecord.TERMINAL_CHARGED_OUTCOMES:
                    self.logger.info(f"Replaying settlement {latest.id} for order {order.id} ({latest.outcome})")
                    return service_ok(
                        SettlementOutcome(record=latest, replayed=True, message="Order already settled")
                    )
                if latest.outcome in SettlementRecord.IN_FLIGHT_OUTCOMES:
                    return service_err(
                        ErrorCodes.SETTLEMENT_IN_PROGRESS,
                        "A settlement for this order is already in progress",
                        value=SettlementOutcome(record=latest, message="Settlement in progress"),
                    )

            if not order.is_settleable:
                return service_err(
                    ErrorCodes.INVALID_ORDER_STATE, f"Order {order.id} cannot be settled in status {order.status}"
                )

            try:
                rate = get_commission_rate() if self.commission_rate is None else self.commission_rate
                split = calculate_commission_split(order.total_amount, rate, order.currency)
            except (InvalidAmount, InvalidRate) as e:
                return service_err(e.code, str(e))

            attempt_number = latest.attempt_number + 1 if latest else 1
            try:
                with transaction.atomic():
                    return SettlementRecord.objects.create(
                        order=order,
                        attempt_number=attempt_number,
                        idempotency_key=charge_idempotency_key(order.id, attempt_number),
                        currency=split.currency,
                        total_amount=split.total_amount,
                        commission_rate=split.commission_rate,
                        platform_commission=split.platform_commission,
                        seller_payout=split.seller_payout,
                        payment_method_ref=payment_method_ref,
                        payout_destination=seller_account.payout_destination,
                    )
            except IntegrityError:
                self.logger.warning(f"Concurrent settlement attempt {attempt_number} for order {order.id}")
                return service_err(
                    ErrorCodes.SETTLEMENT_IN_PROGRESS, "A settlement for this order is already in progress"
                )

    def _charge(self, record: SettlementRecord, payment_method_ref: str, seller_account) -> Optional[ServiceResult]:
        """Charge the buyer. Returns None when charged, otherwise the result to hand back."""
        try:
            result = self.payment_provider.charge(
                amount=record.total_amount,
                currency=record.currency,
                payment_method_ref=payment_method_ref,
                idempotency_key=record.idempotency_key,
                metadata=charge_metadata(record),
            )
        except PaymentDeclined as e:
            return self.fail_charge(record, e.code or "card_declined", str(e), charge_ref=e.reference or "")
        except PaymentException as e:
            # Timeouts and unclassified provider errors leave the charge state unknown
            self.logger.error(f"Charge outcome unknown for order {record.order_id}: {e}", exc_info=True)
            return self._charge_unknown(record, str(e))

        if result.status == PaymentStatus.SUCCEEDED:
            self.mark_charged(record, result.charge_ref, from_minor_units(result.amount, result.currency))
            return None
        if result.status in (PaymentStatus.PROCESSING, PaymentStatus.PENDING):
            return self._charge_unknown(
                record, f"Charge {result.charge_ref} still {result.status.value}", charge_ref=result.charge_ref
            )
        return self.fail_charge(
            record,
            result.failure_code or result.status.value,
            result.failure_message or "",
            charge_ref=result.charge_ref,
        )

    def mark_charged(self, record: SettlementRecord, charge_ref: str, charged_amount: Optional[Decimal] = None):
        """Record a successful charge. ``charged_amount`` is what the provider reports, when known."""
        record.transition_to(SettlementRecord.OUTCOME_CHARGED, charge_ref=charge_ref, failure_code="", failure_message="")
        charge_volume_total.labels(currency=record.currency, status="succeeded").inc(float(record.total_amount))
        self._move_order(record, "paid", f"Charged {charge_ref}")
        self.logger.info(f"Charged {record.total_amount} {record.currency.upper()} for order {record.order_id}")
        if charged_amount is not None and charged_amount != record.total_amount:
            raise_operator_alert(
                self.event_bus,
                record,
                REASON_CHARGE_AMOUNT_MISMATCH,
                f"Provider charged {charged_amount} on {charge_ref}; the ledger total is {record.total_amount}",
                amount=charged_amount,
            )

    def fail_charge(self, record: SettlementRecord, failure_code: str, detail: str, charge_ref: str = ""):
        message = decline_message(failure_code)
        record.transition_to(
            SettlementRecord.OUTCOME_CHARGE_FAILED,
            charge_ref=charge_ref or record.charge_ref,
            failure_code=failure_code,
            failure_message=detail or message,
            completed_at=timezone.now(),
        )
        settlements_total.labels(outcome=record.outcome).inc()
        charge_volume_total.labels(currency=record.currency, status="failed").inc(float(record.total_amount))
        self._move_order(record, "failed", f"Charge failed: {failure_code}")
        self.logger.warning(f"Charge failed for order {record.order_id} attempt {record.attempt_number}: {failure_code}")

        event = SettlementChargeFailed(
            order_id=str(record.order_id),
            settlement_id=str(record.id),
            attempt_number=record.attempt_number,
            failure_code=failure_code,
            reason=record.failure_message,
            occurred_at=timezone.now(),
        )
        self.event_bus.publish("settlement.charge_failed", asdict(event))
        return service_err(ErrorCodes.CHARGE_FAILED, message, value=SettlementOutcome(record=record, message=message))

    def _charge_unknown(self, record: SettlementRecord, detail: str, charge_ref: str = "") -> ServiceResult:
        record.transition_to(
            SettlementRecord.OUTCOME_CHARGE_UNKNOWN,
            charge_ref=charge_ref or record.charge_ref,
            failure_code=UnknownOutcome.code,
            failure_message=detail,
        )
        open_reconciliation_entry(record, ReconciliationEntry.KIND_UNKNOWN_CHARGE, record.total_amount, detail)
        settlements_total.labels(outcome=record.outcome).inc()
        message = "We are confirming your payment. You will not be charged twice."
        return service_err(ErrorCodes.UNKNOWN_OUTCOME, message, value=SettlementOutcome(record=record, message=message))

    # ------------------------------------------------------------------
    # Payout
    # ------------------------------------------------------------------

    def pay_out(self, record: SettlementRecord, seller_account: Optional[SellerAccount]) -> ServiceResult:
        """Transfer the payout for a charged record. The buyer-facing result is always ok."""
        destination = seller_account.payout_destination if seller_account else ""
        if not destination:
            return self._defer_payout(record)

        if destination != record.payout_destination:
            record.payout_destination = destination
            record.save(update_fields=["payout_destination", "updated_at"])

        def attempt_transfer():
            # A refused transfer is replayed under its key, so every attempt gets a new one
            idempotency_key = record.start_transfer_attempt()
            result = self.payment_provider.transfer(
                amount=record.seller_payout,
                currency=record.currency,
                destination_account=destination,
                idempotency_key=idempotency_key,
                metadata=transfer_metadata(record),
            )
            if not result.succeeded:
                raise PaymentDeclined(
                    f"Transfer {result.transfer_ref} returned {result.status.value}",
                    code=TransferFailed.code,
                    reference=result.transfer_ref,
                )
            return result

        retrying = Retrying(
            stop=stop_after_attempt(self.max_transfer_attempts),
            wait=wait_exponential(multiplier=self.transfer_wait_min, min=self.transfer_wait_min, max=self.transfer_wait_max),
            retry=retry_if_exception(lambda e: isinstance(e, PaymentException) and not isinstance(e, PaymentTimeout)),
            before_sleep=before_sleep_log(self.logger, logging.WARNING),
            reraise=True,
        )

        try:
            transfer = retrying(attempt_transfer)
        except PaymentTimeout as e:
            return self.mark_transfer_unknown(record, str(e))
        except PaymentException as e:
            return self.fail_transfer(record, e.code or TransferFailed.code, str(e))

        return self.complete(record, transfer.transfer_ref)

    def complete(self, record: SettlementRecord, transfer_ref: str) -> ServiceResult:
        record.transition_to(
            SettlementRecord.OUTCOME_COMPLETED,
            transfer_ref=transfer_ref,
            failure_code="",
            failure_message="",
            completed_at=timezone.now(),
        )
        settlements_total.labels(outcome=record.outcome).inc()
        payout_volume_total.labels(currency=record.currency, status="succeeded").inc(float(record.seller_payout))
        self._move_order(record, "settled", f"Payout {transfer_ref}")
        self.logger.info(
            f"Settled order {record.order_id}: payout {record.seller_payout} {record.currency.upper()} "
            f"to {mask_value(record.payout_destination)}"
        )

        event = SettlementCompleted(
            order_id=str(record.order_id),
            settlement_id=str(record.id),
            charge_ref=record.charge_ref,
            transfer_ref=transfer_ref,
            total_amount=record.total_amount,
            platform_commission=record.platform_commission,
            seller_payout=record.seller_payout,
            currency=record.currency,
            occurred_at=timezone.now(),
        )
        self.event_bus.publish("settlement.completed", asdict(event))
        return service_ok(SettlementOutcome(record=record, message="Payment complete"))

    def _defer_payout(self, record: SettlementRecord) -> ServiceResult:
        record.transition_to(
            SettlementRecord.OUTCOME_TRANSFER_PENDING, failure_code=TransferPending.code, completed_at=timezone.now()
        )
        open_reconciliation_entry(record, ReconciliationEntry.KIND_PENDING_PAYOUT, record.seller_payout)
        settlements_total.labels(outcome=record.outcome).inc()
        payout_volume_total.labels(currency=record.currency, status="pending").inc(float(record.seller_payout))
        self._move_order(record, "payout_scheduled", "Seller has no payout destination")
        self.logger.info(f"Payout for order {record.order_id} queued: seller has no payout destination")
        self._publish_deferred(record)
        return service_ok(SettlementOutcome(record=record, message="Payment complete"))

    def fail_transfer(self, record: SettlementRecord, failure_code: str, detail: str) -> ServiceResult:
        record.transition_to(
            SettlementRecord.OUTCOME_TRANSFER_FAILED,
            failure_code=failure_code,
            failure_message=detail,
            completed_at=timezone.now(),
        )
        open_reconciliation_entry(record, ReconciliationEntry.KIND_FAILED_TRANSFER, record.seller_payout, detail)
        settlements_total.labels(outcome=record.outcome).inc()
        payout_volume_total.labels(currency=record.currency, status="failed").inc(float(record.seller_payout))
        self._move_order(record, "payout_scheduled", f"Payout failed: {failure_code}")
        raise_operator_alert(
            self.event_bus,
            record,
            REASON_TRANSFER_FAILED,
            f"Buyer charged ({record.charge_ref}) but payout failed after {record.transfer_attempts} attempts: {detail}",
        )
        self._publish_deferred(record)
        # The buyer's charge went through; the payout problem is the operator's
        return service_ok(SettlementOutcome(record=record, requires_attention=True, message="Payment complete"))

    def mark_transfer_unknown(self, record: SettlementRecord, detail: str) -> ServiceResult:
        record.transition_to(
            SettlementRecord.OUTCOME_TRANSFER_UNKNOWN,
            failure_code=UnknownOutcome.code,
            failure_message=detail,
        )
        open_reconciliation_entry(record, ReconciliationEntry.KIND_UNKNOWN_TRANSFER, record.seller_payout, detail)
        settlements_total.labels(outcome=record.outcome).inc()
        self.logger.error(f"Transfer outcome unknown for order {record.order_id}: {detail}")
        return service_ok(SettlementOutcome(record=record, requires_attention=True, message="Payment complete"))

    def close_unconfirmed_transfer(self, record: SettlementRecord, failure_code: str, detail: str):
        """
        End a transfer nobody could confirm as transfer_failed.

        No payout entry is opened: the transfer may have landed, so paying again
        is left to the operator who got the alert.
        """
        record.transition_to(
            SettlementRecord.OUTCOME_TRANSFER_FAILED,
            failure_code=failure_code,
            failure_message=detail,
            completed_at=timezone.now(),
        )
        settlements_total.labels(outcome=record.outcome).inc()
        self._move_order(record, "payout_scheduled", f"Transfer unconfirmed: {failure_code}")
        self.logger.warning(f"Closed unconfirmed transfer for order {record.order_id}: {detail}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _move_order(self, record: SettlementRecord, status: str, reason: str):
        result = self.order_service.update_order_status(record.order_id, status, reason=reason)
        if not result.ok:
            self.logger.error(
                f"Could not move order {record.order_id} to {status} after settlement {record.id}: {result.error_detail}"
            )

    def _publish_deferred(self, record: SettlementRecord):
        event = SettlementPayoutDeferred(
            order_id=str(record.order_id),
            settlement_id=str(record.id),
            outcome=record.outcome,
            seller_payout=record.seller_payout,
            currency=record.currency,
            occurred_at=timezone.now(),
        )
        self.event_bus.publish("settlement.payout_deferred", asdict(event))


def open_reconciliation_entry(record: SettlementRecord, kind: str, amount, last_error: str = "") -> ReconciliationEntry:
    """Open (or return the already open) reconciliation entry of this kind for the record."""
    entry, created = ReconciliationEntry.objects.get_or_create(
        settlement=record,
        kind=kind,
        status=ReconciliationEntry.STATUS_OPEN,
        defaults={"amount": amount, "currency": record.currency, "last_error": last_error},
    )
    if created:
        logger.info(f"Opened {kind} reconciliation entry {entry.id} for order {record.order_id}")
    return entry
