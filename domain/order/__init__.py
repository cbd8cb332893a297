"""Order domain exports."""
from .entity import Order, LineItem, OrderStatus, can_transition
from .repository import OrderRepository

__all__ = ["Order", "LineItem", "OrderStatus", "OrderRepository", "can_transition"]
