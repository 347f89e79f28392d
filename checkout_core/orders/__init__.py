"""Demo order status progression."""
from .models import STATUS_PROGRESSION, Order, OrderStatus, OrderStatusChange
from .progression import Clock, OrderProgressionEngine, SystemClock
from .updater import HttpOrderStatusUpdater

__all__ = [
    "Clock",
    "HttpOrderStatusUpdater",
    "Order",
    "OrderProgressionEngine",
    "OrderStatus",
    "OrderStatusChange",
    "STATUS_PROGRESSION",
    "SystemClock",
]
