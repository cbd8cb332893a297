"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel
from .product import ProductModel
from .notification import NotificationModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "ProductModel",
    "NotificationModel",
]
