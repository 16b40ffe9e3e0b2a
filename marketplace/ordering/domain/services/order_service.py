"""
OrderService - Order Intake and Lifecycle

Creates orders from buyer intake data and moves them through the settlement
status machine. Every status change is appended to the order's audit trail.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import transaction

from infrastructure.events import get_event_bus
from infrastructure.observability.tracing import tracer
from marketplace.domain.events.order_events import OrderPlacedEvent, OrderStatusChangedEvent
from marketplace.infra.observability.metrics import order_status_transitions_total, order_value, orders_placed_total
from marketplace.ordering.domain.models.order import Order, OrderStatusChange
from marketplace.services.base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok
from marketplace.sellers.domain.models.seller_account import SellerAccount
from utils.logging_utils import mask_value

User = get_user_model()
logger = logging.getLogger(__name__)

# Order.total_amount is DecimalField(max_digits=10, decimal_places=2)
MAX_AMOUNT_DIGITS = 10
AMOUNT_DECIMAL_PLACES = 2


def default_currency() -> str:
    """Currency new orders are placed in (SETTLEMENT["CURRENCY"])."""
    return str(getattr(settings, "SETTLEMENT", {}).get("CURRENCY", "usd")).lower()


class OrderService(BaseService):
    """
    Service for order intake and status management.
    """

    def __init__(self, event_bus=None):
        """
        Initialize OrderService.

        Args:
            event_bus: Event bus for publishing domain events (injected)
        """
        super().__init__()
        self.event_bus = event_bus or get_event_bus()

    @BaseService.log_performance
    def create_order(
        self, buyer: User, seller_id, total_amount, shipping_address, payment_method: str
    ) -> ServiceResult[Order]:
        """
        Create a pending order.

        Args:
            buyer: Authenticated buying user
            seller_id: Id of the selling user (must be enrolled as a seller)
            total_amount: Positive amount, at most two decimal places
            shipping_address: Non-empty address string or mapping
            payment_method: Opaque payment method reference captured at intake

        Returns:
            ServiceResult with the created Order (status "pending")
        """
        with tracer.start_as_current_span("order_create") as span:
            if buyer is None or not getattr(buyer, "is_authenticated", False):
                return service_err(ErrorCodes.PERMISSION_DENIED, "Authentication required to place an order")

            amount_result = self._parse_amount(total_amount)
            if not amount_result.ok:
                orders_placed_total.labels(status="rejected").inc()
                return amount_result
            amount = amount_result.value

            if not shipping_address or (isinstance(shipping_address, str) and not shipping_address.strip()):
                return service_err(ErrorCodes.VALIDATION_ERROR, "A shipping address is required")
            if not isinstance(shipping_address, (str, dict)):
                return service_err(ErrorCodes.VALIDATION_ERROR, "Shipping address must be a string or an object")

            if not isinstance(payment_method, str) or not payment_method.strip():
                return service_err(ErrorCodes.VALIDATION_ERROR, "A payment method is required")

            try:
                seller = User.objects.filter(id=seller_id).first()
            except (ValueError, TypeError, ValidationError):
                seller = None
            if seller is None or not SellerAccount.objects.filter(seller=seller).exists():
                return service_err(ErrorCodes.SELLER_NOT_FOUND, f"Seller {seller_id} not found")
            if seller.pk == buyer.pk:
                return service_err(ErrorCodes.VALIDATION_ERROR, "Buyers cannot order from themselves")

            with transaction.atomic():
                order = Order.objects.create(
                    buyer=buyer,
                    seller=seller,
                    status="pending",
                    total_amount=amount,
                    currency=default_currency(),
                    shipping_address=shipping_address,
                    payment_method=payment_method.strip(),
                )
                OrderStatusChange.objects.create(order=order, from_status="", to_status="pending", reason="Order placed")

            event = OrderPlacedEvent(
                order_id=str(order.id),
                buyer_id=str(buyer.pk),
                seller_id=str(seller.pk),
                total_amount=order.total_amount,
                currency=order.currency,
            )
            event.publish(self.event_bus)

            orders_placed_total.labels(status="success").inc()
            order_value.observe(float(order.total_amount))

            span.set_attribute("order.id", str(order.id))
            span.set_attribute("order.total", str(order.total_amount))
            self.logger.info(
                f"Created order {order.id} for buyer {buyer.pk} from seller {seller.pk}: "
                f"total {order.total_amount}, method {mask_value(order.payment_method)}"
            )
            return service_ok(order)

    @BaseService.log_performance
    def update_order_status(self, order_id, status: str, reason: str = "") -> ServiceResult[Order]:
        """
        Move an order to a new status.

        Same-status updates are no-ops; transitions outside Order.ALLOWED_TRANSITIONS
        fail with invalid_order_state.
        """
        if status not in Order.ALLOWED_TRANSITIONS:
            return service_err(ErrorCodes.VALIDATION_ERROR, f"Unknown order status '{status}'")

        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(id=order_id)
            except (Order.DoesNotExist, ValidationError):
                return service_err(ErrorCodes.ORDER_NOT_FOUND, f"Order {order_id} not found")

            previous = order.status
            if previous == status:
                return service_ok(order)

            if not order.can_transition_to(status):
                self.logger.warning(f"Rejected order {order_id} transition {previous} -> {status}")
                return service_err(
                    ErrorCodes.INVALID_ORDER_STATE, f"Cannot move order from '{previous}' to '{status}'"
                )

            order.status = status
            order.save(update_fields=["status", "updated_at"])
            OrderStatusChange.objects.create(order=order, from_status=previous, to_status=status, reason=reason[:255])

        order_status_transitions_total.labels(from_status=previous, to_status=status).inc()
        event = OrderStatusChangedEvent(order_id=str(order.id), from_status=previous, to_status=status, reason=reason)
        event.publish(self.event_bus)

        self.logger.info(f"Order {order.id}: {previous} -> {status} ({reason})")
        return service_ok(order)

    @BaseService.log_performance
    def get_order(self, order_id, user: User = None) -> ServiceResult[Order]:
        """
        Get an order. When ``user`` is given it must be the buyer, the seller or staff.
        """
        try:
            order = Order.objects.select_related("buyer", "seller").get(id=order_id)
        except (Order.DoesNotExist, ValidationError):
            return service_err(ErrorCodes.ORDER_NOT_FOUND, f"Order {order_id} not found")

        if user is not None and not (user.is_staff or user.pk in (order.buyer_id, order.seller_id)):
            return service_err(ErrorCodes.NOT_ORDER_OWNER, "You do not have access to this order")
        return service_ok(order)

    @BaseService.log_performance
    def list_orders(
        self, user: User, role: str = "buyer", status: Optional[str] = None, page: int = 1, page_size: int = 20
    ) -> ServiceResult[Dict]:
        """
        List a user's orders as buyer (default) or seller.

        Returns:
            ServiceResult with {results, count, page, page_size, num_pages}
        """
        if role not in ("buyer", "seller"):
            return service_err(ErrorCodes.INVALID_INPUT, "role must be 'buyer' or 'seller'")
        if page < 1 or page_size < 1:
            return service_err(ErrorCodes.INVALID_INPUT, "page and page_size must be positive")

        queryset = Order.objects.filter(**{role: user}).select_related("buyer", "seller")
        if status:
            queryset = queryset.filter(status=status)
        queryset = queryset.order_by("-created_at")

        offset = (page - 1) * page_size
        total_count = queryset.count()
        orders = list(queryset[offset : offset + page_size])

        return service_ok(
            {
                "results": orders,
                "count": total_count,
                "page": page,
                "page_size": page_size,
                "num_pages": (total_count + page_size - 1) // page_size,
            }
        )

    def status_history(self, order_id):
        return list(OrderStatusChange.objects.filter(order_id=order_id).order_by("created_at", "id"))

    @staticmethod
    def _parse_amount(total_amount) -> ServiceResult[Decimal]:
        if isinstance(total_amount, (bool, float)) or total_amount is None:
            return service_err(ErrorCodes.INVALID_AMOUNT, "Total amount must be a decimal string or number")
        try:
            amount = Decimal(str(total_amount).strip())
        except (InvalidOperation, ValueError):
            return service_err(ErrorCodes.INVALID_AMOUNT, f"Total amount {total_amount!r} is not a number")

        if not amount.is_finite() or amount <= 0:
            return service_err(ErrorCodes.INVALID_AMOUNT, "Total amount must be positive")
        if amount.as_tuple().exponent < -AMOUNT_DECIMAL_PLACES:
            return service_err(ErrorCodes.INVALID_AMOUNT, "Total amount may have at most two decimal places")

        if amount.adjusted() >= MAX_AMOUNT_DIGITS - AMOUNT_DECIMAL_PLACES:
            return service_err(ErrorCodes.INVALID_AMOUNT, "Total amount is too large")
        return service_ok(amount.quantize(Decimal(1).scaleb(-AMOUNT_DECIMAL_PLACES)))
