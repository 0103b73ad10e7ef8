import json

import pytest
import stripe

from storefront.domain.errors import ConfigurationError, ExternalServiceError, ValidationError
from storefront.services.payment_gateway import StripeGateway, WebhookEvent

from conftest import WEBHOOK_SECRET, fake_stripe_client, sign_payload, stripe_event


def order_dict(**overrides):
    order = {
        "id": "order-1",
        "user_email": "user-1@example.com",
        "subtotal": 2999,
        "tax": 240,
        "total": 3239,
        "items": [
            {"item_type": "course", "item_id": "course-a", "item_title": "Python Basics", "price": 2999, "quantity": 1}
        ],
    }
    order.update(overrides)
    return order


# =====================================================
# CHECKOUT SESSION
# =====================================================
def test_create_checkout_session(gateway):
    session = gateway.create_checkout_session("order-1", order_dict(), "https://shop/ok", "https://shop/cancel")

    assert session.id == "cs_test_1"
    assert session.url.endswith("cs_test_1")

    call = gateway.client.v1.checkout.sessions.calls[0]
    params = call["params"]
    assert params["mode"] == "payment"
    assert params["client_reference_id"] == "order-1"
    assert params["metadata"]["order_id"] == "order-1"
    assert params["payment_intent_data"]["metadata"]["order_id"] == "order-1"
    assert params["customer_email"] == "user-1@example.com"
    assert call["options"] == {"idempotency_key": "checkout-order-1"}


def test_line_items_include_tax(gateway):
    line_items = gateway.build_line_items(order_dict())

    assert [li["price_data"]["product_data"]["name"] for li in line_items] == ["Python Basics", "Tax"]
    assert line_items[0]["price_data"]["unit_amount"] == 2999
    assert line_items[1]["price_data"]["unit_amount"] == 240
    assert sum(li["price_data"]["unit_amount"] * li["quantity"] for li in line_items) == 3239


def test_line_items_skip_zero_tax(gateway):
    assert len(gateway.build_line_items(order_dict(tax=0))) == 1


@pytest.mark.parametrize("overrides", [{"items": []}, {"total": 0}])
def test_create_checkout_session_rejects_bad_orders(gateway, overrides):
    with pytest.raises(ValidationError):
        gateway.create_checkout_session("order-1", order_dict(**overrides), "ok", "cancel")
    assert gateway.client.v1.checkout.sessions.calls == []


def test_stripe_failure_becomes_external_service_error():
    gateway = StripeGateway(
        api_key="sk_test_123",
        webhook_secret=WEBHOOK_SECRET,
        client=fake_stripe_client(error=stripe.APIConnectionError("network down")),
    )
    with pytest.raises(ExternalServiceError) as exc:
        gateway.create_checkout_session("order-1", order_dict(), "ok", "cancel")
    assert exc.value.service == "stripe"


def test_missing_api_key_is_configuration_error():
    gateway = StripeGateway(api_key="", webhook_secret=WEBHOOK_SECRET)
    with pytest.raises(ConfigurationError):
        gateway.create_checkout_session("order-1", order_dict(), "ok", "cancel")


# =====================================================
# WEBHOOK VALIDATION
# =====================================================
def test_invalid_signature_rejected_before_parsing(gateway):
    # body is not even JSON, only signature verification can have rejected it
    with pytest.raises(ValidationError) as exc:
        gateway.validate_webhook("{definitely not json", "t=1,v1=deadbeef")
    assert "signature" in exc.value.message


def test_signature_from_other_secret_rejected(gateway):
    payload = stripe_event("checkout.session.completed", {"id": "cs_1"})
    with pytest.raises(ValidationError):
        gateway.validate_webhook(payload, sign_payload(payload, secret="whsec_other"))


def test_missing_signature_rejected(gateway):
    with pytest.raises(ValidationError) as exc:
        gateway.validate_webhook("{}", None)
    assert exc.value.message == "Missing Stripe signature"


def test_missing_webhook_secret_is_configuration_error():
    gateway = StripeGateway(api_key="sk_test_123", webhook_secret="", client=fake_stripe_client())
    with pytest.raises(ConfigurationError):
        gateway.validate_webhook("{}", "t=1,v1=deadbeef")


def test_valid_signature_returns_event(gateway):
    payload = stripe_event("checkout.session.completed", {"id": "cs_1", "client_reference_id": "order-1"})

    event = gateway.validate_webhook(payload.encode("utf-8"), sign_payload(payload))

    assert event["type"] == "checkout.session.completed"
    assert event["data"]["object"]["client_reference_id"] == "order-1"


# =====================================================
# NORMALIZATION
# =====================================================
def event_dict(event_type, obj):
    return json.loads(stripe_event(event_type, obj))


def test_checkout_completed_prefers_client_reference_id():
    event = StripeGateway.process_webhook_event(
        event_dict(
            "checkout.session.completed",
            {
                "id": "cs_1",
                "client_reference_id": "order-ref",
                "metadata": {"order_id": "order-meta"},
                "payment_intent": "pi_1",
                "amount_total": 3239,
            },
        )
    )
    assert event == WebhookEvent(
        type="checkout.session.completed",
        order_id="order-ref",
        payment_intent_id="pi_1",
        amount=3239,
        status="paid",
        event_id="evt_test_1",
    )


def test_checkout_completed_falls_back_to_metadata():
    event = StripeGateway.process_webhook_event(
        event_dict("checkout.session.completed", {"id": "cs_1", "metadata": {"order_id": "order-meta"}})
    )
    assert event.order_id == "order-meta"
    assert event.amount is None


def test_payment_intent_events():
    succeeded = StripeGateway.process_webhook_event(
        event_dict("payment_intent.succeeded", {"id": "pi_1", "amount": 3239, "metadata": {"order_id": "order-1"}})
    )
    assert (succeeded.order_id, succeeded.payment_intent_id, succeeded.status) == ("order-1", "pi_1", "paid")

    failed = StripeGateway.process_webhook_event(
        event_dict("payment_intent.payment_failed", {"id": "pi_1", "amount": 3239, "metadata": {}})
    )
    assert failed.order_id is None
    assert failed.status == "payment_failed"


def test_charge_refunded():
    event = StripeGateway.process_webhook_event(
        event_dict(
            "charge.refunded",
            {"id": "ch_1", "payment_intent": "pi_1", "amount_refunded": 3239, "metadata": {"order_id": "order-1"}},
        )
    )
    assert (event.order_id, event.payment_intent_id, event.amount, event.status) == (
        "order-1",
        "pi_1",
        3239,
        "refunded",
    )


def test_unknown_event_type_has_no_order():
    event = StripeGateway.process_webhook_event(event_dict("customer.created", {"id": "cus_1"}))
    assert event.order_id is None
    assert event.status is None
