from .seller_service import SellerService


__all__ = ["SellerService"]
