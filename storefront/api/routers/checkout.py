# storefront/api/routers/checkout.py
from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool

from storefront.api.deps import current_user_id, get_cart_service, get_gateway, get_order_service
from storefront.domain.schemas import CheckoutIn, CheckoutSessionOut
from storefront.services.cart_service import CartService
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import StripeGateway
from storefront.services.webhook_service import WebhookService

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/session", response_model=CheckoutSessionOut, status_code=201)
def create_session(
    payload: CheckoutIn,
    user_id: str = Depends(current_user_id),
    carts: CartService = Depends(get_cart_service),
    orders: OrderService = Depends(get_order_service),
    gateway: StripeGateway = Depends(get_gateway),
):
    svc = CheckoutService(carts, orders, gateway)
    return svc.start_checkout(user_id, payload.user_email, payload.success_url, payload.cancel_url)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None),
    carts: CartService = Depends(get_cart_service),
    orders: OrderService = Depends(get_order_service),
    gateway: StripeGateway = Depends(get_gateway),
):
    # raw bytes, the signature covers the exact body
    payload = await request.body()
    svc = WebhookService(orders, gateway, carts)
    # handle() blocks on db locks, redis and the broker
    return await run_in_threadpool(svc.handle, payload, stripe_signature)
