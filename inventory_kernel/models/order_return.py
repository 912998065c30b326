"""
ReturnRecord and ReturnLineRecord -- read-only view of customer returns.

The ledger never writes returns.  It reads completed returns and their
lines to restore stock for returns that were imported already completed.
"""

from sqlalchemy import Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import Base
from inventory_kernel.domain.movement_types import ReturnStatus


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


class ReturnRecord(Base):
    """A customer return of (part of) one order."""

    __tablename__ = "returns"

    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)

    return_number: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[ReturnStatus] = mapped_column(
        Enum(
            ReturnStatus,
            native_enum=False,
            length=32,
            values_callable=_enum_values,
            validate_strings=True,
        ),
        nullable=False,
    )

    lines: Mapped[list["ReturnLineRecord"]] = relationship(
        back_populates="return_record",
        order_by="ReturnLineRecord.id",
    )

    def __repr__(self) -> str:
        return f"<ReturnRecord {self.return_number} {self.status.value}>"


class ReturnLineRecord(Base):
    """One returned variant and its quantity."""

    __tablename__ = "return_lines"

    return_id: Mapped[int] = mapped_column(ForeignKey("returns.id"), nullable=False, index=True)
    product_variant_id: Mapped[int] = mapped_column(nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)

    return_record: Mapped[ReturnRecord] = relationship(back_populates="lines")
