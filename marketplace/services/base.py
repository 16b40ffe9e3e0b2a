"""
Service-layer primitives shared by the marketplace and payment apps.

Services return a ``ServiceResult`` instead of raising for outcomes a caller
is expected to handle (a declined card, an unknown order, an invalid status
transition). Views turn ``result.error`` into an HTTP status; exceptions are
left for bugs and infrastructure failures.
"""

import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Generic, Optional, TypeVar

from payment_system.domain.exceptions import ChargeFailed, InvalidAmount, InvalidRate, UnknownOutcome

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    ``value`` is set on success and may also be set on failure when the
    failure produced something worth returning, e.g. the SettlementRecord a
    declined charge left behind. ``error`` is one of ``ErrorCodes``.
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_detail: Optional[str] = None


def service_ok(value: T) -> ServiceResult[T]:
    return ServiceResult(ok=True, value=value)


def service_err(error: str, error_detail: str = "", value: Any = None) -> ServiceResult:
    """Failed result; ``error_detail`` falls back to the code itself."""
    return ServiceResult(ok=False, value=value, error=error, error_detail=error_detail or error)


class BaseService:
    """
    Gives every service a logger named ``<module>.<ClassName>`` and the
    ``log_performance`` decorator.
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{type(self).__module__}.{type(self).__name__}")

    @staticmethod
    def log_performance(func: Callable) -> Callable:
        """
        Log how long a service method took and how it ended.

        Failed ``ServiceResult``s log at WARNING with their error code;
        exceptions log at ERROR with the traceback and are re-raised.
        """

        @wraps(func)
        def wrapper(self, *args, **kwargs):
            name = f"{type(self).__name__}.{func.__name__}"
            started = time.perf_counter()
            try:
                result = func(self, *args, **kwargs)
            except Exception as e:
                elapsed_ms = (time.perf_counter() - started) * 1000
                self.logger.error(f"{name} raised after {elapsed_ms:.2f}ms: {e}", exc_info=True)
                raise

            elapsed_ms = (time.perf_counter() - started) * 1000
            if isinstance(result, ServiceResult) and not result.ok:
                self.logger.warning(f"{name} failed with '{result.error}' in {elapsed_ms:.2f}ms")
            else:
                self.logger.info(f"{name} completed in {elapsed_ms:.2f}ms")
            return result

        return wrapper


class ErrorCodes:
    """Error codes carried by ServiceResult.error and returned in API error bodies."""

    # Orders and sellers
    ORDER_NOT_FOUND = "order_not_found"
    INVALID_ORDER_STATE = "invalid_order_state"
    SELLER_NOT_FOUND = "seller_not_found"

    # Settlement; the calculation and charge codes match the exception classes
    INVALID_AMOUNT = InvalidAmount.code
    INVALID_RATE = InvalidRate.code
    CHARGE_FAILED = ChargeFailed.code
    UNKNOWN_OUTCOME = UnknownOutcome.code
    SETTLEMENT_IN_PROGRESS = "settlement_in_progress"
    SETTLEMENT_NOT_FOUND = "settlement_not_found"
    RECONCILIATION_ENTRY_NOT_FOUND = "reconciliation_entry_not_found"
    PAYMENT_PROVIDER_ERROR = "payment_provider_error"

    # Access
    PERMISSION_DENIED = "permission_denied"
    NOT_ORDER_OWNER = "not_order_owner"

    # Input
    VALIDATION_ERROR = "validation_error"
    INVALID_INPUT = "invalid_input"
