# storefront/services/cart_service.py
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.domain.pricing import calculate_totals
from storefront.domain.schemas import Availability, Cart, CartItem, CartValidation, ItemType, utcnow
from storefront.repos.cart_store import CartStore
from storefront.repos.catalog_repo import CatalogRepo, ITEM_LABELS
from storefront.repos.grant_repo import GrantRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def _item_type(value: ItemType | str) -> ItemType:
    try:
        return ItemType(value)
    except ValueError:
        raise ValidationError(f"Invalid item type: {value}") from None


class CartService:
    """
    Use cases of the cart domain.
    Commands (add, update, remove, merge, clear) recompute totals and write the
    whole cart back to the store; queries (get, validate) never write.
    """

    def __init__(self, store: CartStore, catalog: CatalogRepo, grants: GrantRepo | None = None):
        self.store = store
        self.catalog = catalog
        self.grants = grants or GrantRepo(catalog.db)

    def _save(self, cart: Cart) -> Cart:
        totals = calculate_totals(cart.items)
        cart.subtotal = totals.subtotal
        cart.tax = totals.tax
        cart.total = totals.total
        cart.item_count = totals.item_count
        cart.updated_at = utcnow()
        self.store.set(cart)
        return cart

    # =====================================================
    # QUERY
    # =====================================================
    def get_cart(self, user_id: str) -> Cart:
        return self.store.get(user_id) or Cart(user_id=user_id)

    def get_item_count(self, user_id: str) -> int:
        return self.get_cart(user_id).item_count

    def validate_cart(self, user_id: str) -> CartValidation:
        """
        Re-checks every line against the catalog right before checkout.
        Catches what changed since add time: price, unpublished items,
        started or sold out events, courses the user already owns.
        """
        cart = self.get_cart(user_id)
        errors: list[str] = []

        for item in cart.items:
            label = ITEM_LABELS[item.item_type]
            entry = self.catalog.lookup(item.item_type, item.item_id)

            if entry is None:
                errors.append(f'{label} "{item.item_title}" is no longer available')
                continue
            if not entry.is_published:
                errors.append(f'{label} "{item.item_title}" is not currently available')
            if entry.price != item.price:
                errors.append(f'Price for "{item.item_title}" has changed')
            if item.item_type is ItemType.COURSE and self.grants.is_enrolled(user_id, item.item_id):
                errors.append(f'You are already enrolled in "{item.item_title}"')
            if item.item_type is ItemType.EVENT:
                if entry.has_started():
                    errors.append(f'Event "{item.item_title}" has already started')
                if not entry.has_capacity_for(item.quantity):
                    errors.append(f'Event "{item.item_title}" is fully booked')

        if errors:
            logger.info(f"Cart of user {user_id} failed validation: {len(errors)} problem(s)")
        return CartValidation(valid=not errors, errors=errors)

    def check_item_availability(self, item_type: ItemType | str, item_id: str) -> Availability:
        item_type = _item_type(item_type)
        label = ITEM_LABELS[item_type]
        entry = self.catalog.lookup(item_type, item_id)

        if entry is None:
            return Availability(available=False, reason=f"{label} not found")
        if not entry.is_published:
            return Availability(available=False, reason=f"{label} not published")
        if entry.has_started():
            return Availability(available=False, reason="Event has already started")
        if not entry.has_capacity_for(1):
            return Availability(available=False, reason="Event fully booked")
        return Availability(available=True)

    # =====================================================
    # COMMANDS
    # =====================================================
    def add_to_cart(self, user_id: str, item_type: ItemType | str, item_id: str, quantity: int = 1) -> Cart:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        item_type = _item_type(item_type)

        #soft check only, checkout re-validates
        entry = self.catalog.lookup(item_type, item_id)
        if entry is None or not entry.is_published:
            raise NotFoundError(ITEM_LABELS[item_type])

        cart = self.get_cart(user_id)
        existing = cart.find(item_type, item_id)

        if existing:
            logger.info(
                f"Item {item_type.value}:{item_id} already in cart of user {user_id}, "
                f"quantity {existing.quantity} -> {existing.quantity + quantity}"
            )
            existing.quantity += quantity
        else:
            logger.info(f"Adding {item_type.value}:{item_id} to cart of user {user_id}")
            cart.items.append(
                CartItem(
                    item_type=item_type,
                    item_id=item_id,
                    item_title=entry.title,
                    price=entry.price,
                    quantity=quantity,
                )
            )

        return self._save(cart)

    def update_quantity(self, user_id: str, item_type: ItemType | str, item_id: str, quantity: int) -> Cart:
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")
        item_type = _item_type(item_type)

        cart = self.store.get(user_id)
        if cart is None:
            raise NotFoundError("Cart")

        existing = cart.find(item_type, item_id)
        if existing is None:
            raise NotFoundError("Cart item")

        if quantity == 0:
            cart.items.remove(existing)
        else:
            existing.quantity = quantity

        return self._save(cart)

    def remove_from_cart(self, user_id: str, item_type: ItemType | str, item_id: str) -> Cart:
        return self.update_quantity(user_id, item_type, item_id, 0)

    def clear_cart(self, user_id: str) -> None:
        self.store.delete(user_id)
        logger.info(f"Cart of user {user_id} cleared")

    def merge_guest_cart(self, guest_user_id: str, user_id: str) -> Cart:
        """
        Login flow: fold the anonymous session cart into the user's cart.
        Safe to repeat, a missing guest cart leaves the user's cart untouched.
        """
        if guest_user_id == user_id:
            return self.get_cart(user_id)

        guest_cart = self.store.get(guest_user_id)
        if guest_cart is None:
            return self.get_cart(user_id)

        cart = self.get_cart(user_id)
        for guest_item in guest_cart.items:
            existing = cart.find(guest_item.item_type, guest_item.item_id)
            if existing:
                existing.quantity += guest_item.quantity
            else:
                cart.items.append(guest_item.model_copy())

        cart.user_id = user_id
        merged = self._save(cart)
        self.store.delete(guest_user_id)

        logger.info(f"Merged guest cart {guest_user_id} into cart of user {user_id}")
        return merged
