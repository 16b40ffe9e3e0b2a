"""
Marketplace services: order intake (``OrderService``) and seller payout
accounts (``SellerService``), plus the ServiceResult primitives the payment
app builds on.
"""

from .base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok
from marketplace.ordering.domain.services.order_service import OrderService
from marketplace.sellers.domain.services.seller_service import SellerService

__all__ = [
    "BaseService",
    "ErrorCodes",
    "OrderService",
    "SellerService",
    "ServiceResult",
    "service_err",
    "service_ok",
]
