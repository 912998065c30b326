"""ORM models for the inventory ledger."""

from inventory_kernel.models.location import Location
from inventory_kernel.models.movement import ORDER_EFFECT_INDEXES, InventoryMovement
from inventory_kernel.models.order import OrderRecord
from inventory_kernel.models.order_return import ReturnLineRecord, ReturnRecord
from inventory_kernel.models.stock import LocationStock, VariantStock

__all__ = [
    "Location",
    "InventoryMovement",
    "ORDER_EFFECT_INDEXES",
    "OrderRecord",
    "ReturnLineRecord",
    "ReturnRecord",
    "LocationStock",
    "VariantStock",
]
