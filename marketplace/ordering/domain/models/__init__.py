from .order import Order, OrderStatusChange


__all__ = ["Order", "OrderStatusChange"]
