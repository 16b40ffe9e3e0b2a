from .seller_account import SellerAccount


__all__ = ["SellerAccount"]
