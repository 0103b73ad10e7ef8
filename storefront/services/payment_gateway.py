# storefront/services/payment_gateway.py
from dataclasses import dataclass
from typing import Any, Dict, Mapping

import stripe

from storefront.domain.errors import ConfigurationError, ExternalServiceError, ValidationError
from storefront.domain.order_status import OrderStatus
from storefront.utils.settings import (
    CURRENCY,
    STRIPE_MAX_NETWORK_RETRIES,
    STRIPE_SECRET_KEY,
    STRIPE_TIMEOUT_SECONDS,
    STRIPE_WEBHOOK_SECRET,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

ORDER_ID_KEY = "order_id"
PAYMENT_FAILED = "payment_failed"


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str | None = None


@dataclass(frozen=True)
class WebhookEvent:
    """Provider event reduced to what the order side needs."""

    type: str
    order_id: str | None
    payment_intent_id: str | None = None
    amount: int | None = None
    status: str | None = None
    event_id: str | None = None


def _get(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError):
        return getattr(obj, key, None)


def _id_of(value: Any) -> str | None:
    # expandable fields come as an id string or as the full object
    if value is None or isinstance(value, str):
        return value
    return _get(value, "id")


def _metadata_order_id(obj: Any) -> str | None:
    return _get(_get(obj, "metadata") or {}, ORDER_ID_KEY) or None


class StripeGateway:
    """
    Stripe Checkout adapter.
    - creates hosted checkout sessions for orders
    - verifies webhook signatures
    - normalizes webhook events
    """

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        timeout: int | None = None,
        client: Any = None,
        currency: str = CURRENCY,
    ):
        self.api_key = api_key if api_key is not None else STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else STRIPE_WEBHOOK_SECRET
        self.timeout = timeout or STRIPE_TIMEOUT_SECONDS
        self.currency = currency
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
            self._client = stripe.StripeClient(
                self.api_key,
                http_client=stripe.RequestsClient(timeout=self.timeout),
                max_network_retries=STRIPE_MAX_NETWORK_RETRIES,
            )
        return self._client

    def build_line_items(self, order: Mapping[str, Any]) -> list[Dict[str, Any]]:
        line_items = [
            {
                "price_data": {
                    "currency": self.currency,
                    "product_data": {
                        "name": item["item_title"],
                        "description": str(item["item_type"]).replace("_", " ").capitalize(),
                    },
                    "unit_amount": item["price"],
                },
                "quantity": item["quantity"],
            }
            for item in order["items"]
        ]

        if order.get("tax", 0) > 0:
            line_items.append(
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {"name": "Tax", "description": "Sales tax"},
                        "unit_amount": order["tax"],
                    },
                    "quantity": 1,
                }
            )
        return line_items

    def create_checkout_session(
        self,
        order_id: str,
        order: Mapping[str, Any],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        if not order_id:
            raise ValidationError("Order ID is required")
        if not order.get("items"):
            raise ValidationError("Order must have at least one item")
        if order.get("total", 0) <= 0:
            raise ValidationError("Order total must be greater than zero")

        # order id goes to three places, different events carry different objects
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": self.build_line_items(order),
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": order_id,
            "metadata": {
                ORDER_ID_KEY: order_id,
                "subtotal": str(order.get("subtotal", 0)),
                "tax": str(order.get("tax", 0)),
                "total": str(order["total"]),
            },
            "payment_intent_data": {"metadata": {ORDER_ID_KEY: order_id}},
        }
        if order.get("user_email"):
            params["customer_email"] = order["user_email"]

        logger.info(f"Creating Stripe checkout session for order {order_id}")
        try:
            session = self.client.v1.checkout.sessions.create(
                params=params,
                options={"idempotency_key": f"checkout-{order_id}"},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session for order {order_id} failed: {e}")
            raise ExternalServiceError("stripe", f"Stripe error: {e.user_message or e}") from e

        return CheckoutSession(id=_get(session, "id"), url=_get(session, "url"))

    def validate_webhook(self, payload: str | bytes, signature: str | None):
        """
        Verifies the Stripe-Signature header before anything in the payload is read.
        Raises instead of returning anything for an unverifiable request.
        """
        if not self.webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        if not signature:
            raise ValidationError("Missing Stripe signature")

        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise ValidationError(f"Webhook signature verification failed: {e}") from None
        except ValueError as e:
            # signature was fine but the body is not an event
            raise ValidationError(f"Invalid webhook payload: {e}") from None

    @staticmethod
    def process_webhook_event(event: Any) -> WebhookEvent:
        event_type = _get(event, "type")
        event_id = _get(event, "id")
        obj = _get(_get(event, "data"), "object")

        if event_type == "checkout.session.completed":
            return WebhookEvent(
                type=event_type,
                # client_reference_id first, metadata as fallback
                order_id=_get(obj, "client_reference_id") or _metadata_order_id(obj),
                payment_intent_id=_id_of(_get(obj, "payment_intent")),
                amount=_get(obj, "amount_total"),
                status=OrderStatus.PAID.value,
                event_id=event_id,
            )

        if event_type == "payment_intent.succeeded":
            return WebhookEvent(
                type=event_type,
                order_id=_metadata_order_id(obj),
                payment_intent_id=_get(obj, "id"),
                amount=_get(obj, "amount"),
                status=OrderStatus.PAID.value,
                event_id=event_id,
            )

        if event_type == "payment_intent.payment_failed":
            return WebhookEvent(
                type=event_type,
                order_id=_metadata_order_id(obj),
                payment_intent_id=_get(obj, "id"),
                amount=_get(obj, "amount"),
                status=PAYMENT_FAILED,
                event_id=event_id,
            )

        if event_type == "charge.refunded":
            return WebhookEvent(
                type=event_type,
                order_id=_metadata_order_id(obj),
                payment_intent_id=_id_of(_get(obj, "payment_intent")),
                amount=_get(obj, "amount_refunded"),
                status=OrderStatus.REFUNDED.value,
                event_id=event_id,
            )

        return WebhookEvent(type=event_type, order_id=None, event_id=event_id)
