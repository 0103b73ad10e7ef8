# storefront/services/checkout_service.py
from typing import Any, Dict

from storefront.domain.errors import AppError, ValidationError
from storefront.domain.order_status import OrderStatus
from storefront.services.cart_service import CartService
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import StripeGateway
from storefront.utils.settings import BASE_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutService:
    def __init__(self, carts: CartService, orders: OrderService, gateway: StripeGateway):
        self.carts = carts
        self.orders = orders
        self.gateway = gateway

    def start_checkout(
        self,
        user_id: str,
        user_email: str,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> Dict[str, Any]:
        """
        Use Case: cart -> pending order -> Stripe session -> payment_pending.

        The order is committed before Stripe is called, no transaction stays
        open over the network call. The webhook finishes the order.
        """
        cart = self.carts.get_cart(user_id)
        if not cart.items:
            raise ValidationError("Cart is empty. Please add items before checkout.")

        validation = self.carts.validate_cart(user_id)
        if not validation.valid:
            raise ValidationError("Cart contains items that changed", errors=validation.errors)

        order = self.orders.create_order(user_id, cart.items, user_email)

        try:
            session = self.gateway.create_checkout_session(
                order["id"],
                order,
                success_url or f"{BASE_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url or f"{BASE_URL}/checkout/cancel",
            )
        except AppError:
            logger.error(f"Checkout session for order {order['id']} failed, cancelling order")
            self.orders.update_order_status(order["id"], OrderStatus.CANCELLED, reason="checkout session failed")
            raise

        order = self.orders.attach_checkout_session(order["id"], session.id)
        return {"order_id": order["id"], "session_id": session.id, "url": session.url}
