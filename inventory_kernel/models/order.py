"""
OrderRecord model -- read-only view of the order collaborator's table.

The ledger never writes orders.  It reads the status (to find cancelled
orders), the order number (for movement references) and the fulfilment
location configured by the sales-channel integration.
"""

from sqlalchemy import Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base
from inventory_kernel.domain.movement_types import OrderChannel, OrderStatus


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


class OrderRecord(Base):
    """An order as seen by the inventory ledger."""

    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[OrderStatus] = mapped_column(
        Enum(
            OrderStatus,
            native_enum=False,
            length=32,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )

    channel: Mapped[OrderChannel] = mapped_column(
        Enum(
            OrderChannel,
            native_enum=False,
            length=32,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
        default=OrderChannel.PORTAL,
    )

    # Location configured on the channel integration, if any
    fulfillment_location_id: Mapped[int | None] = mapped_column(
        ForeignKey("locations.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<OrderRecord {self.order_number} {self.status.value}>"
