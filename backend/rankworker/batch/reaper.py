"""Stuck-run reaper: fail runs orphaned by a crashed or killed tick."""

import logging
import uuid
from datetime import datetime, timedelta

from rankworker.batch.refunds import FEATURE_TYPE, refund_checks
from rankworker.batch.store import BatchStore
from rankworker.models.batch_run import RUN_FAILED
from rankworker.services.credit_ledger import CreditLedger
from rankworker.services.notifier import Notifier

logger = logging.getLogger(__name__)


def _describe(threshold: timedelta) -> str:
    minutes = int(threshold.total_seconds() // 60)
    if minutes % 60 == 0:
        hours = minutes // 60
        return f"{hours} hour{'s' if hours != 1 else ''}"
    return f"{minutes} minutes"


def _notify_timed_out(notifier: Notifier, run_id: uuid.UUID, account_id: uuid.UUID, completed_checks: int) -> None:
    """Tell the account about a timed-out run when no refund notice went out."""
    try:
        notifier.notify(account_id, "rank_batch_failed", {
            "feature": FEATURE_TYPE,
            "batch_run_id": str(run_id),
            "reason": "timeout",
            "completed_checks": completed_checks,
        })
    except Exception:
        logger.exception(f"Failed to notify account {account_id} about timed-out batch {run_id}")


def reap_stuck_runs(
    store: BatchStore,
    ledger: CreditLedger,
    notifier: Notifier,
    threshold: timedelta,
    now: datetime,
) -> list[uuid.UUID]:
    """Fail processing runs started more than ``threshold`` ago and refund unfinished checks."""
    cutoff = now - threshold
    stale_runs = store.find_stale_runs(cutoff)
    if not stale_runs:
        return []

    logger.warning(f"Found {len(stale_runs)} stuck batch runs, marking as failed")
    reaped = []
    for run in stale_runs:
        run_id, account_id, idempotency_key = run.id, run.account_id, run.idempotency_key

        tally = store.tally(run_id)
        finished = store.finish_run(run_id, {
            "status": RUN_FAILED,
            "error_message": f"Run timed out after {_describe(threshold)}",
            "completed_at": now,
            "processed_keywords": tally.resolved_items,
            "successful_checks": tally.successful_items,
            "failed_checks": tally.failed_items,
            "total_credits_used": tally.completed_checks,
        }, only_started_before=cutoff)
        if not finished:
            continue

        reaped.append(run_id)
        logger.warning(
            f"Reaped batch {run_id}: {tally.completed_checks} checks completed, "
            f"{tally.unfinished_checks} not completed"
        )
        refunded = refund_checks(
            ledger,
            notifier,
            run_id,
            account_id,
            idempotency_key,
            tally.unfinished_checks,
            description=f"Refund for {tally.unfinished_checks} uncompleted rank checks (batch timed out)",
            reason="timeout",
        )
        if not refunded:
            _notify_timed_out(notifier, run_id, account_id, tally.completed_checks)

    return reaped
