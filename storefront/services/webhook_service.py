# storefront/services/webhook_service.py
from typing import Any, Dict

from redis.exceptions import RedisError

from storefront.domain.errors import ValidationError
from storefront.domain.order_status import OrderStatus
from storefront.services.cart_service import CartService
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import PAYMENT_FAILED, StripeGateway, WebhookEvent
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SETTLED_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.REFUNDED, OrderStatus.CANCELLED})
IN_FLIGHT_OR_DONE = frozenset({OrderStatus.PAID, OrderStatus.PROCESSING, OrderStatus.COMPLETED})


class WebhookService:
    """
    Applies verified payment events to orders.

    Stripe delivers at least once and in any order, so every branch is written
    to be replayed: statuses already reached are skipped, fulfillment is only
    started from paid/processing, and a late failure never touches a paid order.
    """

    def __init__(self, orders: OrderService, gateway: StripeGateway, carts: CartService | None = None):
        self.orders = orders
        self.gateway = gateway
        self.carts = carts

    def handle(self, payload: str | bytes, signature: str | None) -> Dict[str, Any]:
        stripe_event = self.gateway.validate_webhook(payload, signature)
        event = self.gateway.process_webhook_event(stripe_event)
        logger.info(f"[WEBHOOK] received {event.type} ({event.event_id})")
        return self.apply(event)

    def apply(self, event: WebhookEvent) -> Dict[str, Any]:
        order_id = event.order_id

        if order_id is None and event.status and event.payment_intent_id:
            #charges do not carry the intent metadata, fall back to the stored intent id
            order = self.orders.get_order_by_payment_intent(event.payment_intent_id)
            order_id = order["id"] if order else None

        handlers = {
            OrderStatus.PAID.value: self._on_paid,
            OrderStatus.REFUNDED.value: self._on_refunded,
            PAYMENT_FAILED: self._on_payment_failed,
        }
        handler = handlers.get(event.status)

        if order_id is None or handler is None:
            logger.info(f"[WEBHOOK] ignoring {event.type}, no order to act on")
            return {"received": True, "order_id": None, "action": "ignored"}

        action = handler(order_id, event)
        return {"received": True, "order_id": order_id, "action": action}

    def _on_paid(self, order_id: str, event: WebhookEvent) -> str:
        order = self.orders.get_order(order_id)
        status = OrderStatus(order["status"])

        if status in SETTLED_STATUSES:
            if status is OrderStatus.CANCELLED:
                logger.warning(f"[WEBHOOK] payment received for cancelled order {order_id}, needs a manual refund")
            else:
                logger.info(f"[WEBHOOK] order {order_id} already {status.value}")
            return "noop"

        if event.payment_intent_id:
            self.orders.record_payment_intent(order_id, event.payment_intent_id)

        # the status read above is unlocked, a parallel delivery may move the order first
        try:
            if status is OrderStatus.PENDING:
                self.orders.update_order_status(order_id, OrderStatus.PAYMENT_PENDING)
            if status in (OrderStatus.PENDING, OrderStatus.PAYMENT_PENDING):
                self.orders.update_order_status(order_id, OrderStatus.PAID)
        except ValidationError:
            if self._status_now(order_id) in IN_FLIGHT_OR_DONE:
                logger.info(f"[WEBHOOK] order {order_id} already advanced by a parallel delivery")
                return "noop"
            raise

        try:
            completed = self.orders.fulfill_order(order_id)
        except ValidationError:
            if self._status_now(order_id) is OrderStatus.COMPLETED:
                logger.info(f"[WEBHOOK] order {order_id} fulfilled by a parallel delivery")
                return "noop"
            raise

        self._clear_cart(completed["user_id"])
        return "fulfilled"

    def _on_refunded(self, order_id: str, event: WebhookEvent) -> str:
        order = self.orders.get_order(order_id)
        status = OrderStatus(order["status"])

        if status in (OrderStatus.REFUNDED, OrderStatus.CANCELLED):
            logger.info(f"[WEBHOOK] order {order_id} already {status.value}")
            return "noop"

        try:
            if status is OrderStatus.COMPLETED:
                self.orders.refund_order(order_id, reason=event.type)
                return "refunded"

            # refunded before fulfillment ran, nothing was granted
            self.orders.update_order_status(order_id, OrderStatus.CANCELLED, reason=event.type)
            return "cancelled"
        except ValidationError:
            if self._status_now(order_id) in (OrderStatus.REFUNDED, OrderStatus.CANCELLED):
                logger.info(f"[WEBHOOK] order {order_id} handled by a parallel delivery")
                return "noop"
            raise

    def _status_now(self, order_id: str) -> OrderStatus:
        return OrderStatus(self.orders.get_order(order_id)["status"])

    def _on_payment_failed(self, order_id: str, event: WebhookEvent) -> str:
        # the checkout session lets the customer retry, the order keeps waiting
        logger.warning(f"[WEBHOOK] payment failed for order {order_id} (intent {event.payment_intent_id})")
        return "payment_failed"

    def _clear_cart(self, user_id: str) -> None:
        if self.carts is None:
            return
        try:
            self.carts.clear_cart(user_id)
        except RedisError as e:
            logger.warning(f"[WEBHOOK] could not clear cart of user {user_id}: {e}")
