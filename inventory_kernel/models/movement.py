"""
InventoryMovement model -- the append-only movement log.

Responsibility:
    One row per stock change at one location.  The log is the source of
    truth; every projection is a fold over these rows in
    (``created_at``, ``id``) order.

Invariants enforced:
    - At most one ``sale`` per (order, variant):
      partial unique index ``uq_inventory_movements_order_sale``.
    - At most one restoration (``cancellation`` or ``return``) per
      (order, variant): partial unique index
      ``uq_inventory_movements_order_restoration``.
    - Rows are immutable after insert apart from the snapshot columns and a
      one-way NULL -> value location assignment (db/immutability.py).

Failure modes:
    - IntegrityError on an order-effect duplicate.  The Ledger Writer turns
      this into a DUPLICATE_SUPPRESSED result.
"""

from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UTCDateTime
from inventory_kernel.domain.dtos import MovementSnapshot
from inventory_kernel.domain.movement_types import MovementType

_SALE_PREDICATE = "order_id IS NOT NULL AND type = 'sale'"
_RESTORATION_PREDICATE = "order_id IS NOT NULL AND type IN ('cancellation', 'return')"

ORDER_EFFECT_INDEXES = (
    "uq_inventory_movements_order_sale",
    "uq_inventory_movements_order_restoration",
)


class InventoryMovement(Base):
    """
    A signed stock change at one location.

    ``quantity_before``/``quantity_after`` record the location's running
    total around this movement; ``quantity_after = quantity_before +
    quantity`` holds for every row written by the ledger.
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        Index(
            "uq_inventory_movements_order_sale",
            "order_id",
            "product_variant_id",
            unique=True,
            postgresql_where=text(_SALE_PREDICATE),
            sqlite_where=text(_SALE_PREDICATE),
        ),
        Index(
            "uq_inventory_movements_order_restoration",
            "order_id",
            "product_variant_id",
            unique=True,
            postgresql_where=text(_RESTORATION_PREDICATE),
            sqlite_where=text(_RESTORATION_PREDICATE),
        ),
        Index(
            "ix_inventory_movements_scope",
            "product_variant_id",
            "location_id",
            "created_at",
            "id",
        ),
        Index("ix_inventory_movements_order", "order_id"),
    )

    product_variant_id: Mapped[int] = mapped_column(nullable=False)

    # NULL only on legacy rows awaiting migration
    location_id: Mapped[int | None] = mapped_column(
        ForeignKey("locations.id"),
        nullable=True,
    )

    movement_type: Mapped[MovementType] = mapped_column(
        "type",
        Enum(
            MovementType,
            native_enum=False,
            length=32,
            values_callable=lambda enum_cls: [m.value for m in enum_cls],
            validate_strings=True,
        ),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(nullable=False)

    quantity_before: Mapped[int] = mapped_column(nullable=False, default=0)

    quantity_after: Mapped[int] = mapped_column(nullable=False, default=0)

    order_id: Mapped[int | None] = mapped_column(nullable=True)

    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    purchase_order_item_id: Mapped[int | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    def to_snapshot(self) -> MovementSnapshot:
        return MovementSnapshot(
            id=self.id,
            product_variant_id=self.product_variant_id,
            location_id=self.location_id,
            movement_type=self.movement_type,
            quantity=self.quantity,
            quantity_before=self.quantity_before,
            quantity_after=self.quantity_after,
            created_at=self.created_at,
            order_id=self.order_id,
            reference=self.reference,
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryMovement {self.id} {self.movement_type.value} "
            f"v={self.product_variant_id} loc={self.location_id} q={self.quantity}>"
        )
