# storefront/data/models/grants.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint

from storefront.data.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class CourseEnrollmentModel(Base):
    __tablename__ = "course_enrollments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    course_id = Column(String(64), nullable=False)
    order_id = Column(String(36), nullable=True)
    status = Column(String(16), nullable=False, default="enrolled")  # enrolled, cancelled
    enrolled_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (UniqueConstraint("user_id", "course_id", name="u_enrollment_user_course"),)


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    event_id = Column(String(64), nullable=False, index=True)
    order_id = Column(String(36), nullable=True)
    status = Column(String(16), nullable=False, default="confirmed")  # confirmed, cancelled
    attendees = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # one row per order, a user buying more seats later gets a second booking
    __table_args__ = (UniqueConstraint("order_id", "event_id", name="u_booking_order_event"),)


class DownloadGrantModel(Base):
    __tablename__ = "download_grants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    product_id = Column(String(64), nullable=False)
    order_id = Column(String(36), nullable=True)
    granted_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (UniqueConstraint("user_id", "product_id", name="u_download_user_product"),)
