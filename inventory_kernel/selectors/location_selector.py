"""
LocationSelector -- location lookups and the default-location strategy.

Default location:
    The active location flagged ``is_default``; otherwise the oldest active
    location.  An explicit code (from configuration) overrides both.

Best-stocked location:
    For order deductions without a channel-configured location, the active
    location holding the most positive stock of the variant wins; ties go
    to the oldest location.
"""

from sqlalchemy import select

from inventory_kernel.domain.dtos import LocationInfo
from inventory_kernel.models.location import Location
from inventory_kernel.models.stock import LocationStock
from inventory_kernel.selectors.base import BaseSelector


def _to_info(location: Location) -> LocationInfo:
    return LocationInfo(
        id=location.id,
        code=location.code,
        name=location.name,
        is_active=location.is_active,
        is_default=location.is_default,
    )


class LocationSelector(BaseSelector):
    """Read-only location queries."""

    def get(self, location_id: int) -> LocationInfo | None:
        location = self.session.get(Location, location_id)
        return _to_info(location) if location is not None else None

    def get_by_code(self, code: str) -> LocationInfo | None:
        location = self.session.execute(
            select(Location).where(Location.code == code)
        ).scalar_one_or_none()
        return _to_info(location) if location is not None else None

    def list_active(self) -> list[LocationInfo]:
        rows = self.session.execute(
            select(Location).where(Location.is_active.is_(True)).order_by(Location.id)
        ).scalars()
        return [_to_info(row) for row in rows]

    def default_location(self, code: str | None = None) -> LocationInfo | None:
        """
        Resolve the default location.

        Args:
            code: Explicit location code; when given, only that location
                is considered.

        Returns:
            The default location, or None when nothing qualifies.
        """
        if code:
            location = self.get_by_code(code)
            if location is None or not location.is_active:
                return None
            return location

        flagged = self.session.execute(
            select(Location)
            .where(Location.is_default.is_(True), Location.is_active.is_(True))
            .order_by(Location.id)
            .limit(1)
        ).scalar_one_or_none()
        if flagged is not None:
            return _to_info(flagged)

        first = self.session.execute(
            select(Location)
            .where(Location.is_active.is_(True))
            .order_by(Location.id)
            .limit(1)
        ).scalar_one_or_none()
        return _to_info(first) if first is not None else None

    def best_stocked_location(self, product_variant_id: int) -> int | None:
        """Active location with the most positive stock of the variant."""
        return self.session.execute(
            select(LocationStock.location_id)
            .join(Location, Location.id == LocationStock.location_id)
            .where(
                LocationStock.product_variant_id == product_variant_id,
                LocationStock.quantity > 0,
                Location.is_active.is_(True),
            )
            .order_by(LocationStock.quantity.desc(), LocationStock.location_id)
            .limit(1)
        ).scalar_one_or_none()
