# storefront/domain/schemas.py
from datetime import datetime, timezone
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from storefront.domain.order_status import OrderStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ItemType(str, Enum):
    COURSE = "course"
    EVENT = "event"
    DIGITAL_PRODUCT = "digital_product"


# =====================================================
# CART (stored as JSON under cart:{user_id})
# =====================================================
class CartItem(BaseModel):
    """Cart line; price is cached in cents at add time."""

    item_type: ItemType
    item_id: str
    item_title: str
    price: int = Field(..., ge=0)
    quantity: int = Field(..., ge=1)

    def key(self) -> tuple[ItemType, str]:
        return self.item_type, self.item_id


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = Field(default_factory=list)
    subtotal: int = 0
    tax: int = 0
    total: int = 0
    item_count: int = 0
    updated_at: datetime = Field(default_factory=utcnow)

    def find(self, item_type: ItemType, item_id: str) -> CartItem | None:
        for item in self.items:
            if item.key() == (item_type, item_id):
                return item
        return None


class CartValidation(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


class Availability(BaseModel):
    available: bool
    reason: str | None = None


# =====================================================
# API IN
# =====================================================
class AddItemIn(BaseModel):
    item_type: ItemType
    item_id: str = Field(..., min_length=1)
    quantity: int = Field(1, gt=0, description="Must be at least 1")


class UpdateItemIn(BaseModel):
    item_type: ItemType
    item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=0, description="0 removes the line")


class MergeCartIn(BaseModel):
    guest_user_id: str = Field(..., min_length=1)


class CheckoutIn(BaseModel):
    user_email: str = Field(..., pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    success_url: str | None = None
    cancel_url: str | None = None


class CancelOrderIn(BaseModel):
    reason: str | None = Field(None, max_length=500)


# =====================================================
# API OUT
# =====================================================
class CheckoutSessionOut(BaseModel):
    order_id: str
    session_id: str
    url: str | None = None


class OrderItemOut(BaseModel):
    id: int
    item_type: ItemType
    item_id: str
    item_title: str
    price: int
    quantity: int
    subtotal: int

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: str
    user_id: str
    user_email: str
    status: OrderStatus
    subtotal: int
    tax: int
    total: int
    checkout_session_id: str | None = None
    payment_intent_id: str | None = None
    status_reason: str | None = None
    items: List[OrderItemOut]
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class OrderPageOut(BaseModel):
    orders: List[OrderOut]
    total: int
    page: int
    limit: int
    pages: int
