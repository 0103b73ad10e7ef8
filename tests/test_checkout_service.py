import pytest
import stripe
from sqlalchemy import select

from storefront.data.models.order import OrderModel
from storefront.domain.errors import ExternalServiceError, ValidationError
from storefront.services.checkout_service import CheckoutService
from storefront.services.payment_gateway import StripeGateway

from conftest import WEBHOOK_SECRET, fake_stripe_client


@pytest.fixture
def checkout(cart_service, order_service, gateway):
    return CheckoutService(cart_service, order_service, gateway)


def test_checkout_creates_order_and_session(checkout, cart_service, order_service, gateway):
    cart_service.add_to_cart("user-1", "course", "course-a")

    result = checkout.start_checkout("user-1", "user-1@example.com")

    assert result["session_id"] == "cs_test_1"
    order = order_service.get_order(result["order_id"], "user-1")
    assert order["status"] == "payment_pending"
    assert order["checkout_session_id"] == "cs_test_1"
    assert order["total"] == 3239

    params = gateway.client.v1.checkout.sessions.calls[0]["params"]
    assert params["success_url"].endswith("/checkout/success?session_id={CHECKOUT_SESSION_ID}")
    assert params["cancel_url"].endswith("/checkout/cancel")
    # the cart is kept until payment succeeds
    assert cart_service.get_item_count("user-1") == 1


def test_checkout_with_empty_cart_fails(checkout, db):
    with pytest.raises(ValidationError):
        checkout.start_checkout("user-1", "user-1@example.com")
    assert db.scalars(select(OrderModel)).all() == []


def test_checkout_with_stale_cart_fails(checkout, cart_service, catalog, db):
    cart_service.add_to_cart("user-1", "course", "course-a")
    catalog.get_course("course-a").price_cents = 3999
    db.commit()

    with pytest.raises(ValidationError) as exc:
        checkout.start_checkout("user-1", "user-1@example.com")
    assert exc.value.errors == ['Price for "Python Basics" has changed']


def test_gateway_failure_cancels_order(cart_service, order_service, db):
    gateway = StripeGateway(
        api_key="sk_test_123",
        webhook_secret=WEBHOOK_SECRET,
        client=fake_stripe_client(error=stripe.APIConnectionError("network down")),
    )
    cart_service.add_to_cart("user-1", "course", "course-a")

    with pytest.raises(ExternalServiceError):
        CheckoutService(cart_service, order_service, gateway).start_checkout("user-1", "user-1@example.com")

    orders = db.scalars(select(OrderModel)).all()
    assert len(orders) == 1
    assert orders[0].status == "cancelled"
    assert orders[0].status_reason == "checkout session failed"
