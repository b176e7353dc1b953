"""Completion evaluator: finalize a run once every item is resolved."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from rankworker.batch.refunds import FEATURE_TYPE, refund_checks
from rankworker.batch.store import BatchStore
from rankworker.models.batch_run import ACTIVE_RUN_STATUSES, RUN_COMPLETED, RUN_FAILED
from rankworker.services.credit_ledger import CreditLedger
from rankworker.services.notifier import Notifier

logger = logging.getLogger(__name__)


@dataclass
class Evaluation:
    finished: bool
    status: str | None = None
    failed_check_count: int = 0
    credits_refunded: int = 0
    operator_alerted: bool = False


class CompletionEvaluator:
    def __init__(self, store: BatchStore, ledger: CreditLedger, notifier: Notifier):
        self.store = store
        self.ledger = ledger
        self.notifier = notifier

    def evaluate(self, run_id: uuid.UUID, now: datetime) -> Evaluation:
        """Finish the run if all items are resolved; otherwise leave it processing.

        Safe to call repeatedly: a run that is already terminal is left alone,
        and only the caller that performs the terminal transition refunds.
        """
        run = self.store.get_run(run_id)
        if run is None:
            logger.warning(f"Run {run_id} not found during completion check")
            return Evaluation(finished=False)
        if run.status not in ACTIVE_RUN_STATUSES:
            return Evaluation(finished=False, status=run.status)

        account_id = run.account_id
        idempotency_key = run.idempotency_key

        tally = self.store.tally(run_id)
        if not tally.all_resolved:
            return Evaluation(finished=False, status=run.status)

        status = RUN_FAILED if tally.all_failed else RUN_COMPLETED
        error_message = None
        if tally.failed_items > 0:
            error_message = f"{tally.failed_items} of {tally.total_items} keywords had errors"

        finished = self.store.finish_run(run_id, {
            "status": status,
            "processed_keywords": tally.total_items,
            "successful_checks": tally.successful_items,
            "failed_checks": tally.failed_items,
            "total_credits_used": tally.credits_used,
            "error_message": error_message,
            "completed_at": now,
        })
        if not finished:
            logger.info(f"Run {run_id} was finished concurrently, nothing to do")
            return Evaluation(finished=False)

        logger.info(
            f"Batch {run_id} {status}: {tally.successful_items} completed, {tally.failed_items} failed"
        )

        evaluation = Evaluation(finished=True, status=status, failed_check_count=tally.failed_checks)
        evaluation.credits_refunded = refund_checks(
            self.ledger,
            self.notifier,
            run_id,
            account_id,
            idempotency_key,
            tally.failed_checks,
            description=f"Refund for {tally.failed_checks} failed rank checks in batch {run_id}",
        )

        if tally.all_failed and tally.total_items > 0:
            evaluation.operator_alerted = self._alert_if_single_cause(run_id, tally.total_items)

        return evaluation

    def _alert_if_single_cause(self, run_id: uuid.UUID, total_items: int) -> bool:
        """Escalate when every item failed with the same error: the provider itself is down."""
        messages = self.store.error_messages(run_id)
        if not messages or any(msg != messages[0] for msg in messages):
            return False

        try:
            self.notifier.alert_operator(
                "Ranking provider issue detected",
                f"All {total_items} keywords in rank batch {run_id} failed. "
                f"The ranking provider account may need attention.",
                {
                    "feature": FEATURE_TYPE,
                    "batch_run_id": str(run_id),
                    "error_sample": messages[0][:200],
                },
            )
        except Exception:
            logger.exception(f"Failed to send operator alert for batch {run_id}")
            return False

        logger.info(f"Operator alert sent for 100% failure in batch {run_id}")
        return True
