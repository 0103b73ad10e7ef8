# storefront/repos/grant_repo.py
from datetime import datetime, timezone

from sqlalchemy import select, update, case
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from storefront.data.models.catalog import CourseModel, DigitalProductModel
from storefront.data.models.grants import CourseEnrollmentModel, BookingModel, DownloadGrantModel


class GrantRepo:
    """
    Enrollment, booking and download grants.
    Every grant is an INSERT ... ON CONFLICT upsert, a method returns True only
    when it actually created (or re-activated) a grant so counters move once.
    """

    def __init__(self, db: Session):
        self.db = db

    def _insert(self, table):
        if self.db.get_bind().dialect.name == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)

    # =====================================================
    # COURSES
    # =====================================================
    def is_enrolled(self, user_id: str, course_id: str) -> bool:
        return self.db.execute(
            select(CourseEnrollmentModel.id).where(
                CourseEnrollmentModel.user_id == user_id,
                CourseEnrollmentModel.course_id == course_id,
                CourseEnrollmentModel.status == "enrolled",
            )
        ).first() is not None

    def enroll(self, user_id: str, course_id: str, order_id: str) -> bool:
        table = CourseEnrollmentModel.__table__
        now = datetime.now(timezone.utc)
        stmt = self._insert(table).values(
            user_id=user_id,
            course_id=course_id,
            order_id=order_id,
            status="enrolled",
            enrolled_at=now,
        )
        #cancelled enrollment (earlier refund) comes back to life, an active one is left alone
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "course_id"],
            set_={"status": "enrolled", "order_id": order_id, "enrolled_at": now},
            where=table.c.status == "cancelled",
        )
        return self.db.execute(stmt).rowcount == 1

    def revoke_enrollment(self, user_id: str, course_id: str, order_id: str) -> bool:
        """Only cancels the enrollment the given order granted."""
        result = self.db.execute(
            update(CourseEnrollmentModel)
            .where(
                CourseEnrollmentModel.user_id == user_id,
                CourseEnrollmentModel.course_id == course_id,
                CourseEnrollmentModel.order_id == order_id,
                CourseEnrollmentModel.status == "enrolled",
            )
            .values(status="cancelled")
        )
        return result.rowcount == 1

    def transfer_enrollment(self, user_id: str, course_id: str, from_order_id: str, to_order_id: str) -> bool:
        result = self.db.execute(
            update(CourseEnrollmentModel)
            .where(
                CourseEnrollmentModel.user_id == user_id,
                CourseEnrollmentModel.course_id == course_id,
                CourseEnrollmentModel.order_id == from_order_id,
                CourseEnrollmentModel.status == "enrolled",
            )
            .values(order_id=to_order_id)
        )
        return result.rowcount == 1

    def bump_enrollment_count(self, course_id: str, delta: int) -> None:
        new_value = CourseModel.enrollment_count + delta
        self.db.execute(
            update(CourseModel)
            .where(CourseModel.id == course_id)
            .values(enrollment_count=case((new_value < 0, 0), else_=new_value))
        )

    # =====================================================
    # EVENTS
    # =====================================================
    def get_booking(self, order_id: str, event_id: str) -> BookingModel | None:
        return self.db.execute(
            select(BookingModel).where(BookingModel.order_id == order_id, BookingModel.event_id == event_id)
        ).scalar_one_or_none()

    def book(self, user_id: str, event_id: str, order_id: str, attendees: int) -> bool:
        stmt = self._insert(BookingModel.__table__).values(
            user_id=user_id,
            event_id=event_id,
            order_id=order_id,
            status="confirmed",
            attendees=attendees,
            created_at=datetime.now(timezone.utc),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["order_id", "event_id"])
        return self.db.execute(stmt).rowcount == 1

    def cancel_booking(self, order_id: str, event_id: str) -> bool:
        result = self.db.execute(
            update(BookingModel)
            .where(
                BookingModel.order_id == order_id,
                BookingModel.event_id == event_id,
                BookingModel.status == "confirmed",
            )
            .values(status="cancelled")
        )
        return result.rowcount == 1

    # =====================================================
    # DIGITAL PRODUCTS
    # =====================================================
    def grant_download(self, user_id: str, product_id: str, order_id: str) -> bool:
        stmt = self._insert(DownloadGrantModel.__table__).values(
            user_id=user_id,
            product_id=product_id,
            order_id=order_id,
            granted_at=datetime.now(timezone.utc),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["user_id", "product_id"])
        return self.db.execute(stmt).rowcount == 1

    def bump_download_count(self, product_id: str, delta: int) -> None:
        new_value = DigitalProductModel.download_count + delta
        self.db.execute(
            update(DigitalProductModel)
            .where(DigitalProductModel.id == product_id)
            .values(download_count=case((new_value < 0, 0), else_=new_value))
        )
