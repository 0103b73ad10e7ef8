# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends

from storefront.api.deps import current_user_id, get_cart_service
from storefront.domain.schemas import AddItemIn, Cart, CartValidation, ItemType, MergeCartIn, UpdateItemIn
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=Cart)
def get_cart(user_id: str = Depends(current_user_id), svc: CartService = Depends(get_cart_service)):
    return svc.get_cart(user_id)


@router.post("/items", response_model=Cart)
def add_item(
    payload: AddItemIn,
    user_id: str = Depends(current_user_id),
    svc: CartService = Depends(get_cart_service),
):
    return svc.add_to_cart(user_id, payload.item_type, payload.item_id, payload.quantity)


@router.patch("/items", response_model=Cart)
def update_item(
    payload: UpdateItemIn,
    user_id: str = Depends(current_user_id),
    svc: CartService = Depends(get_cart_service),
):
    return svc.update_quantity(user_id, payload.item_type, payload.item_id, payload.quantity)


@router.delete("/items/{item_type}/{item_id}", response_model=Cart)
def remove_item(
    item_type: ItemType,
    item_id: str,
    user_id: str = Depends(current_user_id),
    svc: CartService = Depends(get_cart_service),
):
    return svc.remove_from_cart(user_id, item_type, item_id)


@router.delete("", status_code=204)
def clear_cart(user_id: str = Depends(current_user_id), svc: CartService = Depends(get_cart_service)):
    svc.clear_cart(user_id)


@router.get("/validate", response_model=CartValidation)
def validate_cart(user_id: str = Depends(current_user_id), svc: CartService = Depends(get_cart_service)):
    return svc.validate_cart(user_id)


@router.post("/merge", response_model=Cart)
def merge_cart(
    payload: MergeCartIn,
    user_id: str = Depends(current_user_id),
    svc: CartService = Depends(get_cart_service),
):
    """Called right after login with the id of the anonymous session."""
    return svc.merge_guest_cart(payload.guest_user_id, user_id)
