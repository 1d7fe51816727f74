"""Order lifecycle: cancel-then-submit sequencing per order partition."""

from .active_orders import ActiveOrderBook
from .order_manager import OrderManager

__all__ = [
    "ActiveOrderBook",
    "OrderManager",
]
