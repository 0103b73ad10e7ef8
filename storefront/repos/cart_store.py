# storefront/repos/cart_store.py
import redis
from pydantic import ValidationError as SchemaError

from storefront.domain.schemas import Cart
from storefront.utils.retry import redis_retry
from storefront.utils.settings import CART_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartStore:
    """
    Carts live in redis as JSON under cart:{user_id}, every write refreshes the TTL.

    There is no locking between GET and SET. A user is the only writer of their
    cart, so two concurrent mutations of the same cart (e.g. add-to-cart clicked
    in two tabs) race and the last SET wins. This is an accepted trade-off,
    carts are not durable state.
    """

    def __init__(self, client: redis.Redis, ttl: int = CART_TTL_SECONDS):
        self.redis = client
        self.ttl = ttl

    @staticmethod
    def key(user_id: str) -> str:
        return f"cart:{user_id}"

    @redis_retry()
    def get(self, user_id: str) -> Cart | None:
        raw = self.redis.get(self.key(user_id))
        if raw is None:
            return None
        try:
            return Cart.model_validate_json(raw)
        except SchemaError:
            #corrupted payload, drop it and start over
            logger.warning(f"Discarding unreadable cart for user {user_id}")
            self.redis.delete(self.key(user_id))
            return None

    @redis_retry()
    def set(self, cart: Cart, ttl: int | None = None) -> None:
        #SET cart:<user> <json> EX 604800
        self.redis.set(
            name=self.key(cart.user_id),
            value=cart.model_dump_json(),
            ex=ttl or self.ttl,
        )

    @redis_retry()
    def delete(self, user_id: str) -> bool:
        return bool(self.redis.delete(self.key(user_id)))
