"""
Stock projection models.

LocationStock is the Location Stock Projection: the current quantity of one
variant at one location.  VariantStock is the Variant Aggregate: the sum of
a variant's LocationStock rows.  Both are derived data; the movement log is
authoritative and either table can be rebuilt from it.
"""

from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base


class LocationStock(Base):
    """Current quantity of a variant at a location (one row per pair)."""

    __tablename__ = "location_stock"

    __table_args__ = (
        UniqueConstraint(
            "product_variant_id",
            "location_id",
            name="uq_location_stock_scope",
        ),
    )

    product_variant_id: Mapped[int] = mapped_column(nullable=False)

    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<LocationStock v={self.product_variant_id} "
            f"loc={self.location_id} q={self.quantity}>"
        )


class VariantStock(Base):
    """Total quantity of a variant across all locations."""

    __tablename__ = "variant_stock"

    product_variant_id: Mapped[int] = mapped_column(nullable=False, unique=True)

    quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<VariantStock v={self.product_variant_id} q={self.quantity}>"
