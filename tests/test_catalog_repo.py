from datetime import datetime, timedelta, timezone

from storefront.domain.schemas import ItemType
from storefront.repos.catalog_repo import CatalogEntry


def event_entry(max_attendees, booked_seats=0):
    return CatalogEntry(
        item_type=ItemType.EVENT,
        item_id="event-x",
        title="Event",
        price=1000,
        is_published=True,
        start_date=datetime.now(timezone.utc) + timedelta(days=1),
        max_attendees=max_attendees,
        booked_seats=booked_seats,
    )


def test_capacity_limits():
    assert event_entry(None, booked_seats=500).has_capacity_for(10)
    assert event_entry(3, booked_seats=1).has_capacity_for(2)
    assert not event_entry(3, booked_seats=1).has_capacity_for(3)


def test_zero_capacity_means_no_seats():
    assert not event_entry(0).has_capacity_for(1)


def test_has_started():
    entry = event_entry(None)
    assert not entry.has_started()
    assert entry.has_started(now=entry.start_date + timedelta(seconds=1))


def test_lookup_hides_deleted_and_counts_seats(catalog):
    assert catalog.lookup("course", "course-deleted") is None
    assert catalog.lookup(ItemType.COURSE, "course-a").price == 2999

    full = catalog.lookup(ItemType.EVENT, "event-full")
    assert full.booked_seats == 1
    assert full.start_date.tzinfo is not None
