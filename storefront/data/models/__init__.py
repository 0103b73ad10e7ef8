#import all models so SQLAlchemy registers them in Base.metadata

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.catalog import CourseModel, EventModel, DigitalProductModel
from storefront.data.models.grants import CourseEnrollmentModel, BookingModel, DownloadGrantModel

__all__ = [
    "OrderModel",
    "OrderItemModel",
    "CourseModel",
    "EventModel",
    "DigitalProductModel",
    "CourseEnrollmentModel",
    "BookingModel",
    "DownloadGrantModel",
]
