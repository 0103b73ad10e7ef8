# storefront/domain/pricing.py
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Protocol

from storefront.utils.settings import TAX_RATE


class PricedLine(Protocol):
    price: int
    quantity: int


@dataclass(frozen=True)
class CartTotals:
    subtotal: int
    tax: int
    total: int
    item_count: int


def calculate_tax(subtotal: int, rate: Decimal = TAX_RATE) -> int:
    # half-up on whole cents, never banker's rounding
    return int((Decimal(subtotal) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_totals(items: Iterable[PricedLine], rate: Decimal = TAX_RATE) -> CartTotals:
    """
    Single source of truth for cart and order totals (all amounts in cents).
    total is always subtotal + tax.
    """
    items = list(items)
    subtotal = sum(i.price * i.quantity for i in items)
    tax = calculate_tax(subtotal, rate)
    return CartTotals(
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax,
        item_count=sum(i.quantity for i in items),
    )
