"""Pydantic schemas."""

from rankworker.schemas.batch_run import BatchItemRead, BatchRunRead, BatchRunWithItems  # noqa: F401
