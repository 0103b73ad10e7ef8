# storefront/api/deps.py
import redis
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.errors import ValidationError
from storefront.repos.cart_store import CartStore
from storefront.repos.catalog_repo import CatalogRepo
from storefront.services.cart_service import CartService
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import StripeGateway


def get_redis(request: Request) -> redis.Redis:
    return request.app.state.redis


def get_gateway(request: Request) -> StripeGateway:
    return request.app.state.gateway


def current_user_id(x_user_id: str | None = Header(None)) -> str:
    # authentication happens upstream, the gateway forwards the user id
    if not x_user_id:
        raise ValidationError("X-User-Id header is required")
    return x_user_id


def get_cart_service(db: Session = Depends(get_db), client: redis.Redis = Depends(get_redis)) -> CartService:
    return CartService(CartStore(client), CatalogRepo(db))


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)
