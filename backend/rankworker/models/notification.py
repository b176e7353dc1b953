"""Account notification model."""

from sqlalchemy import Column, String, Boolean, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from rankworker.models.base import Base, TimestampMixin, UUIDMixin


class Notification(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "notifications"

    account_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    notification_type = Column(String(50), nullable=False)  # credit_refund, ...
    payload = Column(JSON().with_variant(JSONB(), "postgresql"), default=dict)
    is_read = Column(Boolean, default=False, nullable=False)
