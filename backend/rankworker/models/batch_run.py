"""Rank batch run models: one user-requested "check everything" and its keywords."""

from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from rankworker.models.base import Base, TimestampMixin, UUIDMixin

# Run lifecycle: pending -> processing -> completed | failed
RUN_PENDING = "pending"
RUN_PROCESSING = "processing"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"
ACTIVE_RUN_STATUSES = (RUN_PENDING, RUN_PROCESSING)

# Per-device sub-check states
CHECK_PENDING = "pending"
CHECK_PROCESSING = "processing"
CHECK_COMPLETED = "completed"
CHECK_FAILED = "failed"
CHECK_SKIPPED = "skipped"
TERMINAL_CHECK_STATUSES = (CHECK_COMPLETED, CHECK_FAILED, CHECK_SKIPPED)

DEVICES = ("desktop", "mobile")
CHECKS_PER_ITEM = len(DEVICES)


class BatchRun(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "rank_batch_runs"

    account_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    idempotency_key = Column(String(255))

    status = Column(String(20), nullable=False, default=RUN_PENDING)

    # Derived from items, never incremented in place
    total_keywords = Column(Integer, nullable=False, default=0)
    processed_keywords = Column(Integer, nullable=False, default=0)
    successful_checks = Column(Integer, nullable=False, default=0)
    failed_checks = Column(Integer, nullable=False, default=0)
    estimated_credits = Column(Integer, nullable=False, default=0)
    total_credits_used = Column(Integer)

    scheduled_for = Column(DateTime(timezone=True))
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    error_message = Column(Text)

    # Selection lease, held by the tick currently advancing the run
    lease_token = Column(String(64))
    lease_expires_at = Column(DateTime(timezone=True))

    items = relationship("BatchItem", back_populates="run", order_by="BatchItem.created_at")

    __table_args__ = (
        Index("idx_rank_batch_run_queue", "status", "scheduled_for", "created_at"),
        Index("idx_rank_batch_run_started", "status", "started_at"),
    )


class BatchItem(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "rank_batch_run_items"

    batch_run_id = Column(Uuid(as_uuid=True), ForeignKey("rank_batch_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    keyword_id = Column(Uuid(as_uuid=True), nullable=False)
    search_term = Column(Text, nullable=False)
    location_code = Column(Integer)

    desktop_status = Column(String(20), nullable=False, default=CHECK_PENDING)
    mobile_status = Column(String(20), nullable=False, default=CHECK_PENDING)
    retry_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)

    run = relationship("BatchRun", back_populates="items")

    __table_args__ = (
        Index("idx_rank_batch_item_pending", "batch_run_id", "desktop_status", "mobile_status"),
    )

    def status_for(self, device: str) -> str:
        return getattr(self, f"{device}_status")
