"""Run counters derived from item statuses."""

from dataclasses import dataclass

from rankworker.models.batch_run import CHECKS_PER_ITEM


@dataclass(frozen=True)
class RunTally:
    total_items: int = 0
    resolved_items: int = 0  # both sub-checks terminal
    successful_items: int = 0  # both sub-checks completed
    failed_items: int = 0  # at least one sub-check failed
    completed_checks: int = 0
    failed_checks: int = 0

    @property
    def all_resolved(self) -> bool:
        return self.resolved_items == self.total_items

    @property
    def total_checks(self) -> int:
        return self.total_items * CHECKS_PER_ITEM

    @property
    def unfinished_checks(self) -> int:
        """Sub-checks that did not complete: failed, skipped or never run."""
        return self.total_checks - self.completed_checks

    @property
    def credits_used(self) -> int:
        return self.total_checks - self.failed_checks

    @property
    def all_failed(self) -> bool:
        return self.failed_items == self.total_items
