"""Product domain exports."""
from .entity import Product, DecrementOutcome
from .repository import ProductRepository

__all__ = ["Product", "DecrementOutcome", "ProductRepository"]
