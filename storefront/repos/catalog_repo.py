# storefront/repos/catalog_repo.py
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from storefront.data.models.catalog import CourseModel, EventModel, DigitalProductModel
from storefront.data.models.grants import BookingModel
from storefront.domain.schemas import ItemType

ITEM_LABELS = {
    ItemType.COURSE: "Course",
    ItemType.EVENT: "Event",
    ItemType.DIGITAL_PRODUCT: "Digital product",
}


def as_utc(value: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class CatalogEntry:
    item_type: ItemType
    item_id: str
    title: str
    price: int
    is_published: bool
    start_date: datetime | None = None
    max_attendees: int | None = None
    booked_seats: int = 0

    def has_started(self, now: datetime | None = None) -> bool:
        if self.start_date is None:
            return False
        return self.start_date < (now or datetime.now(timezone.utc))

    def has_capacity_for(self, quantity: int) -> bool:
        if self.max_attendees is None:
            return True
        return self.booked_seats + quantity <= self.max_attendees


class CatalogRepo:
    """Read-only view of courses, events and digital products."""

    def __init__(self, db: Session):
        self.db = db

    def get_course(self, course_id: str) -> CourseModel | None:
        return self.db.execute(
            select(CourseModel).where(CourseModel.id == course_id, CourseModel.deleted_at.is_(None))
        ).scalar_one_or_none()

    def get_event(self, event_id: str) -> EventModel | None:
        return self.db.execute(
            select(EventModel).where(EventModel.id == event_id, EventModel.deleted_at.is_(None))
        ).scalar_one_or_none()

    def get_product(self, product_id: str) -> DigitalProductModel | None:
        return self.db.execute(
            select(DigitalProductModel).where(
                DigitalProductModel.id == product_id,
                DigitalProductModel.deleted_at.is_(None),
            )
        ).scalar_one_or_none()

    def booked_seats(self, event_id: str) -> int:
        return self.db.execute(
            select(func.coalesce(func.sum(BookingModel.attendees), 0)).where(
                BookingModel.event_id == event_id,
                BookingModel.status == "confirmed",
            )
        ).scalar_one()

    def lookup(self, item_type: ItemType | str, item_id: str) -> CatalogEntry | None:
        item_type = ItemType(item_type)

        if item_type is ItemType.COURSE:
            row = self.get_course(item_id)
            if row is None:
                return None
            return CatalogEntry(item_type, row.id, row.title, row.price_cents, row.is_published)

        if item_type is ItemType.EVENT:
            row = self.get_event(item_id)
            if row is None:
                return None
            return CatalogEntry(
                item_type,
                row.id,
                row.title,
                row.price_cents,
                row.is_published,
                start_date=as_utc(row.start_date),
                max_attendees=row.max_attendees,
                booked_seats=self.booked_seats(row.id),
            )

        row = self.get_product(item_id)
        if row is None:
            return None
        return CatalogEntry(item_type, row.id, row.title, row.price_cents, row.is_published)
