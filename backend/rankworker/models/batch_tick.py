"""Batch tick model: audit log per scheduler invocation."""

from sqlalchemy import Column, String, Integer, DateTime, Text, Uuid

from rankworker.models.base import Base, UUIDMixin


class BatchTick(UUIDMixin, Base):
    __tablename__ = "rank_batch_ticks"

    started_at = Column(DateTime(timezone=True), nullable=False, index=True)
    finished_at = Column(DateTime(timezone=True))
    status = Column(String(20), nullable=False, default="running")  # running, idle, success, failed
    batch_run_id = Column(Uuid(as_uuid=True), index=True)
    items_processed = Column(Integer, default=0)
    reaped_runs = Column(Integer, default=0)
    error_message = Column(Text)
