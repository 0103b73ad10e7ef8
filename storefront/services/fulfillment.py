# storefront/services/fulfillment.py
from typing import Callable

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.domain.errors import ConflictError, ValidationError
from storefront.domain.schemas import ItemType
from storefront.repos.catalog_repo import CatalogRepo
from storefront.repos.grant_repo import GrantRepo
from storefront.repos.order_repo import OrderRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[OrderModel, OrderItemModel], bool]


class Fulfillment:
    """
    Per item type grant/revoke pair. fulfill and refund go through the same table,
    handlers run inside the caller's transaction and never commit.
    """

    def __init__(
        self,
        db: Session,
        catalog: CatalogRepo | None = None,
        grants: GrantRepo | None = None,
        orders: OrderRepo | None = None,
    ):
        self.catalog = catalog or CatalogRepo(db)
        self.grants = grants or GrantRepo(db)
        self.orders = orders or OrderRepo(db)
        self.handlers: dict[ItemType, tuple[Handler, Handler]] = {
            ItemType.COURSE: (self._enroll, self._unenroll),
            ItemType.EVENT: (self._book, self._cancel_booking),
            ItemType.DIGITAL_PRODUCT: (self._grant_download, self._keep_download),
        }

    def _pair(self, item: OrderItemModel) -> tuple[Handler, Handler]:
        try:
            return self.handlers[ItemType(item.item_type)]
        except ValueError:
            raise ValidationError(f"Unknown item type: {item.item_type}") from None

    def grant(self, order: OrderModel, item: OrderItemModel) -> bool:
        grant, _ = self._pair(item)
        return grant(order, item)

    def revoke(self, order: OrderModel, item: OrderItemModel) -> bool:
        _, revoke = self._pair(item)
        return revoke(order, item)

    # courses
    def _enroll(self, order, item) -> bool:
        created = self.grants.enroll(order.user_id, item.item_id, order.id)
        if created:
            self.grants.bump_enrollment_count(item.item_id, +1)
            logger.info(f"Enrolled user {order.user_id} in course {item.item_id}")
        return created

    def _unenroll(self, order, item) -> bool:
        # another completed order still pays for this course, the enrollment moves over to it
        keeper = self.orders.other_completed_order_with_item(
            order.user_id, item.item_type, item.item_id, exclude_order_id=order.id
        )
        if keeper is not None:
            if self.grants.transfer_enrollment(order.user_id, item.item_id, order.id, keeper):
                logger.info(f"Course {item.item_id} of user {order.user_id} now covered by order {keeper}")
            return False

        revoked = self.grants.revoke_enrollment(order.user_id, item.item_id, order.id)
        if revoked:
            self.grants.bump_enrollment_count(item.item_id, -1)
            logger.info(f"Revoked course {item.item_id} for user {order.user_id}")
        return revoked

    # events
    def _book(self, order, item) -> bool:
        if self.grants.get_booking(order.id, item.item_id) is not None:
            return False

        entry = self.catalog.lookup(ItemType.EVENT, item.item_id)
        if entry is not None and not entry.has_capacity_for(item.quantity):
            raise ConflictError(f'Event "{item.item_title}" is fully booked')

        created = self.grants.book(order.user_id, item.item_id, order.id, item.quantity)
        if created:
            logger.info(f"Booked {item.quantity} seat(s) on event {item.item_id} for user {order.user_id}")
        return created

    def _cancel_booking(self, order, item) -> bool:
        cancelled = self.grants.cancel_booking(order.id, item.item_id)
        if cancelled:
            logger.info(f"Cancelled booking of order {order.id} on event {item.item_id}")
        return cancelled

    # digital products
    def _grant_download(self, order, item) -> bool:
        created = self.grants.grant_download(order.user_id, item.item_id, order.id)
        if created:
            self.grants.bump_download_count(item.item_id, +1)
        return created

    def _keep_download(self, order, item) -> bool:
        #downloads cannot be taken back
        return False
