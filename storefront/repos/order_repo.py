# storefront/repos/order_repo.py
from datetime import datetime, timezone

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel


class OrderRepo:
    """
    Orders are only flushed here, the service owns commit/rollback.
    """

    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: str) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_order_for_update(self, order_id: str) -> OrderModel | None:
        #SELECT ... FOR UPDATE, serializes webhooks touching the same order
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_by_payment_intent(self, payment_intent_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.payment_intent_id == payment_intent_id)
        ).scalar_one_or_none()

    def other_completed_order_with_item(
        self,
        user_id: str,
        item_type: str,
        item_id: str,
        exclude_order_id: str,
    ) -> str | None:
        """Id of another completed order of the user that also bought this item."""
        return self.db.execute(
            select(OrderModel.id)
            .join(OrderItemModel, OrderItemModel.order_id == OrderModel.id)
            .where(
                OrderModel.user_id == user_id,
                OrderModel.status == "completed",
                OrderModel.id != exclude_order_id,
                OrderItemModel.item_type == item_type,
                OrderItemModel.item_id == item_id,
            )
            .order_by(OrderModel.completed_at)
            .limit(1)
        ).scalar_one_or_none()

    def update_status(self, order_id: str, expected_status: str, new_status: str, **values) -> int:
        """
        UPDATE orders SET status = :new WHERE id = :id AND status = :expected
        Returns rowcount, 0 means somebody else moved the order first.
        """
        values.setdefault("updated_at", datetime.now(timezone.utc))
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == expected_status)
            .values(status=new_status, **values)
        )
        return result.rowcount

    def list_user_orders(
        self,
        user_id: str,
        offset: int,
        limit: int,
        status: str | None = None,
    ) -> tuple[list[OrderModel], int]:
        conditions = [OrderModel.user_id == user_id]
        if status:
            conditions.append(OrderModel.status == status)

        total = self.db.execute(
            select(func.count()).select_from(OrderModel).where(*conditions)
        ).scalar_one()

        rows = self.db.execute(
            select(OrderModel)
            .where(*conditions)
            .order_by(OrderModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()

        return list(rows), total
