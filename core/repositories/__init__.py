"""
Repository mixins for the DuckDB analytics store.

- OrdersMixin: orders, order items, driver deliveries
- InventoryMixin: ingredients, recipes, stock movements
"""
from core.repositories.inventory import InventoryMixin
from core.repositories.orders import OrdersMixin

__all__ = [
    "InventoryMixin",
    "OrdersMixin",
]
