# storefront/data/models/catalog.py
# Catalog tables are owned by the admin side; the checkout core only reads them
# and bumps the denormalized counters during fulfillment.
from sqlalchemy import Column, Integer, String, DateTime, Boolean

from storefront.data.database import Base


class CourseModel(Base):
    __tablename__ = "courses"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    price_cents = Column(Integer, nullable=False)
    is_published = Column(Boolean, nullable=False, default=False)
    enrollment_count = Column(Integer, nullable=False, default=0)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class EventModel(Base):
    __tablename__ = "events"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    price_cents = Column(Integer, nullable=False)
    is_published = Column(Boolean, nullable=False, default=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    max_attendees = Column(Integer, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class DigitalProductModel(Base):
    __tablename__ = "digital_products"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    price_cents = Column(Integer, nullable=False)
    is_published = Column(Boolean, nullable=False, default=False)
    download_count = Column(Integer, nullable=False, default=0)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
