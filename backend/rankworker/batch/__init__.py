"""Incremental rank-check batch processor."""

from rankworker.batch.driver import advance_one_tick, get_run_status  # noqa: F401
