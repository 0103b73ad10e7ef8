import os

# must be set before storefront.utils.settings is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import storefront.data.models  # noqa: F401
from storefront.data.database import Base
from storefront.data.models.catalog import CourseModel, DigitalProductModel, EventModel
from storefront.data.models.grants import BookingModel
from storefront.repos.cart_store import CartStore
from storefront.repos.catalog_repo import CatalogRepo
from storefront.services.cart_service import CartService
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"


class FakeRedis:
    """Implements the handful of commands the cart store uses."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, name):
        return self.data.get(name)

    def set(self, name, value, ex=None):
        self.data[name] = value
        self.ttls[name] = ex
        return True

    def delete(self, *names):
        removed = 0
        for name in names:
            if name in self.data:
                del self.data[name]
                removed += 1
            self.ttls.pop(name, None)
        return removed

    def close(self):
        pass


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send_order_confirmation(self, order):
        self.sent.append(order)


class BrokenNotifier:
    def send_order_confirmation(self, order):
        raise RuntimeError("broker unreachable")


class FakeSessions:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def create(self, params=None, options=None):
        self.calls.append({"params": params, "options": options})
        if self.error is not None:
            raise self.error
        n = len(self.calls)
        return {"id": f"cs_test_{n}", "url": f"https://checkout.stripe.com/c/pay/cs_test_{n}"}


def fake_stripe_client(error=None):
    sessions = FakeSessions(error)
    return SimpleNamespace(v1=SimpleNamespace(checkout=SimpleNamespace(sessions=sessions)))


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> str:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        }
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def catalog(db):
    now = datetime.now(timezone.utc)
    db.add_all(
        [
            CourseModel(id="course-a", title="Python Basics", price_cents=2999, is_published=True),
            CourseModel(id="course-b", title="Advanced SQL", price_cents=4500, is_published=True),
            CourseModel(id="course-draft", title="Draft Course", price_cents=1000, is_published=False),
            CourseModel(
                id="course-deleted",
                title="Old Course",
                price_cents=1000,
                is_published=True,
                deleted_at=now - timedelta(days=1),
            ),
            EventModel(
                id="event-a",
                title="Live Workshop",
                price_cents=5000,
                is_published=True,
                start_date=now + timedelta(days=30),
                max_attendees=3,
            ),
            EventModel(
                id="event-past",
                title="Last Year Meetup",
                price_cents=2000,
                is_published=True,
                start_date=now - timedelta(days=2),
                max_attendees=50,
            ),
            EventModel(
                id="event-full",
                title="Sold Out Talk",
                price_cents=2500,
                is_published=True,
                start_date=now + timedelta(days=10),
                max_attendees=1,
            ),
            DigitalProductModel(id="product-a", title="Cheat Sheet", price_cents=999, is_published=True),
            BookingModel(user_id="someone-else", event_id="event-full", attendees=1, status="confirmed"),
        ]
    )
    db.commit()
    return CatalogRepo(db)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cart_service(fake_redis, catalog):
    return CartService(CartStore(fake_redis), catalog)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def order_service(db, catalog, notifier):
    return OrderService(db, notifier=notifier, catalog=catalog)


@pytest.fixture
def gateway():
    return StripeGateway(
        api_key="sk_test_123",
        webhook_secret=WEBHOOK_SECRET,
        client=fake_stripe_client(),
    )


def line(item_type="course", item_id="course-a", title="Python Basics", price=2999, quantity=1):
    return {
        "item_type": item_type,
        "item_id": item_id,
        "item_title": title,
        "price": price,
        "quantity": quantity,
    }


def paid_order(order_service, user_id="user-1", items=None):
    order = order_service.create_order(user_id, items or [line()], f"{user_id}@example.com")
    order_service.update_order_status(order["id"], "payment_pending")
    return order_service.update_order_status(order["id"], "paid")
