"""
OrderSelector -- read access to the order collaborator's orders and returns.
"""

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from inventory_kernel.domain.dtos import OrderInfo, OrderLine, ReturnInfo
from inventory_kernel.domain.movement_types import MovementType, OrderStatus, ReturnStatus
from inventory_kernel.models.movement import InventoryMovement
from inventory_kernel.models.order import OrderRecord
from inventory_kernel.models.order_return import ReturnRecord
from inventory_kernel.selectors.base import BaseSelector


class OrderSelector(BaseSelector):
    """Read-only order queries."""

    def get(self, order_id: int) -> OrderInfo | None:
        order = self.session.get(OrderRecord, order_id)
        if order is None:
            return None
        return OrderInfo(
            id=order.id,
            order_number=order.order_number,
            status=order.status.value,
            channel=order.channel.value,
            fulfillment_location_id=order.fulfillment_location_id,
        )

    def orders_with_sales(self, statuses: Iterable[OrderStatus]) -> list[int]:
        """
        Ids of orders in one of ``statuses`` that still have at least one
        sale movement, ascending.
        """
        status_list = list(statuses)
        if not status_list:
            return []
        rows = self.session.execute(
            select(OrderRecord.id)
            .join(InventoryMovement, InventoryMovement.order_id == OrderRecord.id)
            .where(
                OrderRecord.status.in_(status_list),
                InventoryMovement.movement_type == MovementType.SALE,
            )
            .distinct()
            .order_by(OrderRecord.id)
        ).scalars()
        return list(rows)

    def order_numbers(self, order_ids: Iterable[int]) -> dict[int, str]:
        ids = list(order_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(OrderRecord.id, OrderRecord.order_number).where(OrderRecord.id.in_(ids))
        ).all()
        return {row.id: row.order_number for row in rows}

    def returns_in_status(self, status: ReturnStatus) -> list[ReturnInfo]:
        """Returns in ``status`` with their lines, ascending by id."""
        rows = self.session.execute(
            select(ReturnRecord)
            .where(ReturnRecord.status == status)
            .options(selectinload(ReturnRecord.lines))
            .order_by(ReturnRecord.id)
        ).scalars()
        return [
            ReturnInfo(
                id=row.id,
                order_id=row.order_id,
                return_number=row.return_number,
                status=row.status.value,
                lines=tuple(
                    OrderLine(product_variant_id=line.product_variant_id, quantity=line.quantity)
                    for line in row.lines
                ),
            )
            for row in rows
        ]
