# storefront/services/order_service.py
from datetime import datetime, timezone
from math import ceil
from typing import Any, Dict, Iterable, Protocol

from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session

from storefront.data.database import transaction
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.domain.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from storefront.domain.order_status import FULFILLABLE_STATUSES, OrderStatus, ensure_transition, parse_status
from storefront.domain.pricing import calculate_totals
from storefront.domain.schemas import CartItem, ItemType
from storefront.repos.catalog_repo import CatalogRepo, ITEM_LABELS
from storefront.repos.order_repo import OrderRepo
from storefront.services.fulfillment import Fulfillment
from storefront.services.notification_service import NotificationService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

CANCELLABLE_BY_CUSTOMER = frozenset({OrderStatus.PENDING, OrderStatus.PAYMENT_PENDING})


class Notifier(Protocol):
    def send_order_confirmation(self, order: Dict[str, Any]) -> None: ...


def order_to_dict(order: OrderModel) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "user_email": order.user_email,
        "status": order.status,
        "subtotal": order.subtotal,
        "tax": order.tax,
        "total": order.total,
        "checkout_session_id": order.checkout_session_id,
        "payment_intent_id": order.payment_intent_id,
        "status_reason": order.status_reason,
        "items": [
            {
                "id": i.id,
                "item_type": i.item_type,
                "item_id": i.item_id,
                "item_title": i.item_title,
                "price": i.price,
                "quantity": i.quantity,
                "subtotal": i.price * i.quantity,
            }
            for i in order.items
        ],
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "completed_at": order.completed_at,
    }


class OrderService:
    """
    Order lifecycle: creation, status state machine, fulfillment and refund.

    Every status write goes through ensure_transition() and a conditional
    UPDATE on the expected current status, under a row lock. This is the only
    code path allowed to change orders.status.
    """

    def __init__(
        self,
        db: Session,
        notifier: Notifier | None = None,
        catalog: CatalogRepo | None = None,
        fulfillment: Fulfillment | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.catalog = catalog or CatalogRepo(db)
        self.fulfillment = fulfillment or Fulfillment(db, catalog=self.catalog, orders=self.repo)
        self.grants = self.fulfillment.grants
        self.notifier = notifier or NotificationService()

    # =====================================================
    # QUERY
    # =====================================================
    def get_order(self, order_id: str, user_id: str | None = None) -> Dict[str, Any]:
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFoundError("Order")
        if user_id is not None and order.user_id != user_id:
            raise AuthorizationError("You do not have permission to view this order")
        return order_to_dict(order)

    def get_order_by_payment_intent(self, payment_intent_id: str) -> Dict[str, Any] | None:
        order = self.repo.get_by_payment_intent(payment_intent_id)
        return order_to_dict(order) if order else None

    def list_user_orders(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        status: str | None = None,
    ) -> Dict[str, Any]:
        if page < 1:
            raise ValidationError("Page must be at least 1")
        if not 1 <= limit <= 100:
            raise ValidationError("Limit must be between 1 and 100")
        if status is not None:
            status = parse_status(status).value

        rows, total = self.repo.list_user_orders(user_id, (page - 1) * limit, limit, status)
        return {
            "orders": [order_to_dict(o) for o in rows],
            "total": total,
            "page": page,
            "limit": limit,
            "pages": ceil(total / limit),
        }

    # =====================================================
    # COMMANDS
    # =====================================================
    def create_order(self, user_id: str, cart_items: Iterable[CartItem | dict], user_email: str) -> Dict[str, Any]:
        """
        Use Case: create an order from cart lines.

        1. rejects an empty cart
        2. re-checks every item against the catalog and existing enrollments
        3. prices with the same calculator as the cart
        4. inserts order + all items in one transaction, status pending
        """
        try:
            items = [i if isinstance(i, CartItem) else CartItem.model_validate(i) for i in cart_items or []]
        except SchemaError as e:
            raise ValidationError(f"Invalid cart item: {e.errors()[0]['msg']}") from None

        if not items:
            raise ValidationError("Cart is empty")

        with transaction(self.db, "order creation"):
            for item in items:
                self._verify_available(user_id, item)

            totals = calculate_totals(items)
            order = OrderModel(
                user_id=user_id,
                user_email=user_email,
                status=OrderStatus.PENDING.value,
                subtotal=totals.subtotal,
                tax=totals.tax,
                total=totals.total,
                items=[
                    OrderItemModel(
                        item_type=item.item_type.value,
                        item_id=item.item_id,
                        item_title=item.item_title,
                        price=item.price,
                        quantity=item.quantity,
                    )
                    for item in items
                ],
            )
            self.repo.add_order(order)

        logger.info(f"Order {order.id} created for user {user_id}: {len(items)} item(s), total {order.total}")
        return order_to_dict(order)

    def update_order_status(
        self,
        order_id: str,
        new_status: OrderStatus | str,
        reason: str | None = None,
    ) -> Dict[str, Any]:
        target = parse_status(new_status)

        with transaction(self.db, "order status update"):
            order = self._lock(order_id)
            if order.status == target.value:
                #webhook redelivery, already applied
                logger.info(f"Order {order_id} already {target.value}, nothing to do")
                return order_to_dict(order)

            extra = {"status_reason": reason} if reason else {}
            self._transition(order, target, **extra)

        return order_to_dict(order)

    def cancel_order(self, order_id: str, reason: str | None = None) -> Dict[str, Any]:
        """Customer-initiated cancel, only before payment."""
        with transaction(self.db, "order cancellation"):
            order = self._lock(order_id)
            if OrderStatus(order.status) not in CANCELLABLE_BY_CUSTOMER:
                raise ValidationError("Only pending orders can be cancelled")
            self._transition(order, OrderStatus.CANCELLED, status_reason=reason)

        logger.info(f"Order {order_id} cancelled")
        return order_to_dict(order)

    def attach_checkout_session(self, order_id: str, session_id: str) -> Dict[str, Any]:
        with transaction(self.db, "checkout session attach"):
            order = self._lock(order_id)
            if order.checkout_session_id:
                raise ConflictError("Order already has a checkout session attached")
            self._transition(order, OrderStatus.PAYMENT_PENDING, checkout_session_id=session_id)

        logger.info(f"Order {order_id} waiting for payment, session {session_id}")
        return order_to_dict(order)

    def record_payment_intent(self, order_id: str, payment_intent_id: str) -> Dict[str, Any]:
        with transaction(self.db, "payment intent record"):
            order = self._lock(order_id)
            if order.payment_intent_id and order.payment_intent_id != payment_intent_id:
                logger.warning(
                    f"Order {order_id} already linked to payment intent {order.payment_intent_id}, "
                    f"ignoring {payment_intent_id}"
                )
            elif not order.payment_intent_id:
                order.payment_intent_id = payment_intent_id
                order.updated_at = datetime.now(timezone.utc)

        return order_to_dict(order)

    def fulfill_order(self, order_id: str) -> Dict[str, Any]:
        """
        Use Case: grant everything the order paid for.

        Only paid/processing orders. Grants, counters and the move to
        completed commit together or not at all. Grants are upserts, so a
        replay never grants twice.
        """
        with transaction(self.db, "order fulfillment"):
            order = self._lock(order_id)
            if OrderStatus(order.status) not in FULFILLABLE_STATUSES:
                raise ValidationError("Order must be paid before fulfillment")

            granted = sum(1 for item in order.items if self.fulfillment.grant(order, item))

            if order.status == OrderStatus.PAID.value:
                self._transition(order, OrderStatus.PROCESSING)
            self._transition(order, OrderStatus.COMPLETED, completed_at=datetime.now(timezone.utc))

        logger.info(f"Order {order_id} fulfilled, {granted} new grant(s)")

        result = order_to_dict(order)
        self._notify_completed(result)
        return result

    def refund_order(self, order_id: str, reason: str | None = None) -> Dict[str, Any]:
        """
        Use Case: reverse a fulfilled order.
        Enrollments and bookings are revoked, downloads already granted stay.
        """
        with transaction(self.db, "order refund"):
            order = self._lock(order_id)
            if order.status != OrderStatus.COMPLETED.value:
                raise ValidationError("Only completed orders can be refunded")

            revoked = sum(1 for item in order.items if self.fulfillment.revoke(order, item))
            self._transition(order, OrderStatus.REFUNDED, status_reason=reason)

        logger.info(f"Order {order_id} refunded, {revoked} grant(s) revoked")
        return order_to_dict(order)

    # =====================================================
    # INTERNAL
    # =====================================================
    def _lock(self, order_id: str) -> OrderModel:
        order = self.repo.get_order_for_update(order_id)
        if not order:
            raise NotFoundError("Order")
        return order

    def _transition(self, order: OrderModel, target: OrderStatus, **values) -> None:
        ensure_transition(order.status, target)

        current = order.status
        rowcount = self.repo.update_status(order.id, current, target.value, **values)

        # optimistic check, 0 rows means the status moved under us
        if rowcount == 0:
            raise ConflictError(f"Order {order.id} was modified concurrently")

        self.db.refresh(order)
        logger.info(f"Order {order.id}: {current} -> {target.value}")

    def _verify_available(self, user_id: str, item: CartItem) -> None:
        label = ITEM_LABELS[item.item_type]
        entry = self.catalog.lookup(item.item_type, item.item_id)

        if entry is None or not entry.is_published:
            raise ValidationError(f'{label} "{item.item_title}" is not available')

        if item.item_type is ItemType.COURSE and self.grants.is_enrolled(user_id, item.item_id):
            raise ValidationError(f'You are already enrolled in "{item.item_title}"')

        if item.item_type is ItemType.EVENT:
            if entry.has_started():
                raise ValidationError(f'Event "{item.item_title}" has already started')
            if not entry.has_capacity_for(item.quantity):
                raise ValidationError(f'Event "{item.item_title}" is fully booked')

    def _notify_completed(self, order: Dict[str, Any]) -> None:
        # best effort, the order is already committed
        try:
            self.notifier.send_order_confirmation(order)
        except Exception:
            logger.exception(f"Order confirmation for {order['id']} could not be dispatched")
