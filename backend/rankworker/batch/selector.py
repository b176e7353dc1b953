"""Run selection: strict FIFO over eligible runs."""

import logging
from dataclasses import dataclass
from datetime import datetime

from rankworker.batch.store import BatchStore
from rankworker.models.batch_run import BatchRun

logger = logging.getLogger(__name__)


@dataclass
class ClaimedRun:
    run: BatchRun
    lease_token: str


def select_next_run(store: BatchStore, now: datetime, lease_seconds: int) -> ClaimedRun | None:
    """Claim the oldest pending/processing run that is due and unleased.

    A pending run becomes processing (with started_at) in the same
    statement that takes the lease, before any item work starts.
    """
    run = store.find_next_run(now)
    if run is None:
        return None

    run_id = run.id
    token = store.claim_run(run, now, lease_seconds)
    if token is None:
        logger.info(f"Run {run_id} was claimed by another tick")
        return None

    store.reset_orphaned_checks(run_id)
    run = store.get_run(run_id)
    logger.info(f"Selected batch run {run_id} ({run.total_keywords} keywords, account {run.account_id})")
    return ClaimedRun(run=run, lease_token=token)
