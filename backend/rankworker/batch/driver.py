"""Invocation driver: one scheduler tick of the rank batch worker.

Each tick: reap stuck runs, claim the next run, advance one bounded slice
of its items, then check whether the run is finished. Finishing a large
run takes many ticks; a tick never waits for one.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from rankworker.batch.completion import CompletionEvaluator, Evaluation
from rankworker.batch.processor import ItemProcessor, PassResult
from rankworker.batch.reaper import reap_stuck_runs
from rankworker.batch.refunds import refund_checks
from rankworker.batch.selector import select_next_run
from rankworker.batch.store import BatchStore
from rankworker.config import Settings, get_settings
from rankworker.models.base import utcnow
from rankworker.models.batch_run import RUN_FAILED, BatchRun
from rankworker.schemas.batch_run import BatchItemRead, BatchRunRead, BatchRunWithItems
from rankworker.services.credit_ledger import CreditLedger
from rankworker.services.notifier import Notifier
from rankworker.services.ranking_client import RankingProvider, normalize_domain

logger = logging.getLogger(__name__)


class RunPrerequisiteError(Exception):
    """The run cannot be processed at all (e.g. no target domain configured)."""


@dataclass
class TickResult:
    status: str  # idle, processed, run_failed
    batch_run_id: uuid.UUID | None = None
    reaped_run_ids: list[uuid.UUID] = field(default_factory=list)
    pass_result: PassResult | None = None
    evaluation: Evaluation | None = None
    message: str | None = None

    def summary(self) -> dict[str, Any]:
        summary: dict[str, Any] = {
            "status": self.status,
            "batch_run_id": str(self.batch_run_id) if self.batch_run_id else None,
            "reaped_runs": len(self.reaped_run_ids),
        }
        if self.message:
            summary["message"] = self.message
        if self.pass_result:
            summary.update({
                "items_processed": self.pass_result.items_processed,
                "successful_checks": self.pass_result.successful_checks,
                "failed_checks": self.pass_result.failed_checks,
                "retried_checks": self.pass_result.retried_checks,
            })
        if self.evaluation and self.evaluation.finished:
            summary["run_status"] = self.evaluation.status
            summary["credits_refunded"] = self.evaluation.credits_refunded
        return summary


def _resolve_target_domain(store: BatchStore, run: BatchRun) -> str:
    domain = normalize_domain(store.get_target_domain(run.account_id))
    if not domain:
        raise RunPrerequisiteError("Business website URL not configured")
    return domain


def _fail_run(
    store: BatchStore,
    ledger: CreditLedger,
    notifier: Notifier,
    run_id: uuid.UUID,
    error_message: str,
    now: datetime,
) -> None:
    """Run-level failure: finish the run as failed and refund everything not yet checked."""
    run = store.get_run(run_id)
    account_id, idempotency_key = run.account_id, run.idempotency_key

    tally = store.tally(run_id)
    finished = store.finish_run(run_id, {
        "status": RUN_FAILED,
        "error_message": error_message,
        "completed_at": now,
        "processed_keywords": tally.resolved_items,
        "successful_checks": tally.successful_items,
        "failed_checks": tally.failed_items,
        "total_credits_used": tally.completed_checks,
    })
    if not finished:
        return

    logger.error(f"Batch {run_id} failed: {error_message}")
    refund_checks(
        ledger,
        notifier,
        run_id,
        account_id,
        idempotency_key,
        tally.unfinished_checks,
        description=f"Refund for {tally.unfinished_checks} rank checks in failed batch {run_id}",
        reason="run_failed",
    )


def advance_one_tick(
    store: BatchStore,
    provider: RankingProvider,
    ledger: CreditLedger,
    notifier: Notifier,
    settings: Settings | None = None,
    now: datetime | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> TickResult:
    settings = settings or get_settings()
    now = now or utcnow()
    deadline = clock() + settings.tick_budget_seconds

    # Reap first so a run is never selected while it is being failed
    reaped = reap_stuck_runs(
        store, ledger, notifier,
        threshold=timedelta(minutes=settings.stale_run_threshold_minutes),
        now=now,
    )

    claimed = select_next_run(store, now, settings.lease_seconds)
    if claimed is None:
        return TickResult(status="idle", reaped_run_ids=reaped, message="No pending batch runs to process")

    run = claimed.run
    run_id = run.id
    try:
        try:
            target_domain = _resolve_target_domain(store, run)
        except RunPrerequisiteError as e:
            _fail_run(store, ledger, notifier, run_id, str(e), now)
            return TickResult(status="run_failed", batch_run_id=run_id, reaped_run_ids=reaped, message=str(e))

        processor = ItemProcessor(
            store,
            provider,
            batch_size=settings.batch_items_per_execution,
            call_delay=settings.provider_call_delay_seconds,
            default_location_code=settings.default_location_code,
            sleep=sleep,
            clock=clock,
        )
        pass_result = processor.process(run, target_domain, deadline=deadline)
        evaluation = CompletionEvaluator(store, ledger, notifier).evaluate(run_id, now)

        return TickResult(
            status="processed",
            batch_run_id=run_id,
            reaped_run_ids=reaped,
            pass_result=pass_result,
            evaluation=evaluation,
        )
    except Exception:
        # Run stays processing; the next tick resumes it or the reaper fails it
        store.rollback()
        raise
    finally:
        store.release_lease(run_id, claimed.lease_token)


def get_run_status(store: BatchStore, run_id: uuid.UUID, include_items: bool = False) -> BatchRunRead | None:
    """Read-only run status for polling callers."""
    run = store.get_run(run_id)
    if run is None:
        return None
    if not include_items:
        return BatchRunRead.model_validate(run)
    return BatchRunWithItems(
        **BatchRunRead.model_validate(run).model_dump(exclude={"progress"}),
        items=[BatchItemRead.model_validate(item) for item in store.list_items(run_id)],
    )
