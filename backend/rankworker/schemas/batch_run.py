"""Pydantic schemas for rank batch runs."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, computed_field


class BatchItemRead(BaseModel):
    """One keyword's progress within a run."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    keyword_id: UUID
    search_term: str
    location_code: int | None = None
    desktop_status: str
    mobile_status: str
    retry_count: int = 0
    error_message: str | None = None


class BatchRunRead(BaseModel):
    """Run status for UI polling."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_id: UUID
    status: str
    total_keywords: int = 0
    processed_keywords: int = 0
    successful_checks: int = 0
    failed_checks: int = 0
    estimated_credits: int = 0
    total_credits_used: int | None = None
    scheduled_for: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    error_message: str | None = None

    @computed_field
    @property
    def progress(self) -> float:
        if not self.total_keywords:
            return 0.0
        return round(self.processed_keywords / self.total_keywords * 100, 1)


class BatchRunWithItems(BatchRunRead):
    """Run with per-keyword detail."""

    items: list[BatchItemRead] = []
