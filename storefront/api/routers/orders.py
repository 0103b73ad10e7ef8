# storefront/api/routers/orders.py
from fastapi import APIRouter, Depends, Query

from storefront.api.deps import current_user_id, get_order_service
from storefront.domain.schemas import CancelOrderIn, OrderOut, OrderPageOut
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=OrderPageOut)
def list_orders(
    page: int = Query(1),
    limit: int = Query(20),
    status: str | None = Query(None),
    user_id: str = Depends(current_user_id),
    svc: OrderService = Depends(get_order_service),
):
    return svc.list_user_orders(user_id, page=page, limit=limit, status=status)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    user_id: str = Depends(current_user_id),
    svc: OrderService = Depends(get_order_service),
):
    return svc.get_order(order_id, user_id)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: str,
    payload: CancelOrderIn | None = None,
    user_id: str = Depends(current_user_id),
    svc: OrderService = Depends(get_order_service),
):
    """
    Customer cancel of an unpaid order.
    Ownership is checked first, someone else's order answers 403.
    """
    svc.get_order(order_id, user_id)
    return svc.cancel_order(order_id, reason=payload.reason if payload else None)
