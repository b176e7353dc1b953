"""Rank check model: append-only record of one successful ranking lookup."""

from sqlalchemy import Column, String, Integer, DateTime, Text, Index, Uuid

from rankworker.models.base import Base, UUIDMixin


class RankCheck(UUIDMixin, Base):
    __tablename__ = "rank_checks"

    account_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    keyword_id = Column(Uuid(as_uuid=True), nullable=False)
    batch_run_id = Column(Uuid(as_uuid=True), index=True)

    search_query_used = Column(Text, nullable=False)
    location_code = Column(Integer, nullable=False)
    device = Column(String(10), nullable=False)  # desktop, mobile
    position = Column(Integer)  # None = not in results
    found_url = Column(Text)
    checked_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_rank_check_keyword_device", "keyword_id", "device", "checked_at"),
    )
