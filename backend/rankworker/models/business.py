"""Business model: per-account site whose rankings are tracked."""

from sqlalchemy import Column, String, Uuid

from rankworker.models.base import Base, TimestampMixin, UUIDMixin


class Business(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "businesses"

    account_id = Column(Uuid(as_uuid=True), unique=True, nullable=False, index=True)
    name = Column(String(255))
    business_website = Column(String(500))
