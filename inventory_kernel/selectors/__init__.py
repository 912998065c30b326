"""Read-only query selectors."""

from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.selectors.location_selector import LocationSelector
from inventory_kernel.selectors.order_selector import OrderSelector

__all__ = ["BaseSelector", "LocationSelector", "OrderSelector"]
