"""Credit refunds for rank checks that did not complete."""

import logging
import uuid

from rankworker.services.credit_ledger import CreditLedger, IdempotencyError
from rankworker.services.notifier import Notifier

logger = logging.getLogger(__name__)

FEATURE_TYPE = "rank_tracking"


def refund_checks(
    ledger: CreditLedger,
    notifier: Notifier,
    run_id: uuid.UUID,
    account_id: uuid.UUID,
    idempotency_key: str | None,
    amount: int,
    description: str,
    reason: str | None = None,
) -> int:
    """Refund ``amount`` credits for a run and tell the account.

    Returns the credits refunded by this call (0 when nothing was due, the
    refund already happened, or it failed). Failures are logged, never
    raised: refunds are reconciled out of band.
    """
    if amount <= 0 or not idempotency_key:
        return 0

    metadata = {
        "feature_type": FEATURE_TYPE,
        "description": description,
        "batch_run_id": str(run_id),
        "failed_checks": amount,
    }
    if reason:
        metadata["reason"] = reason

    try:
        ledger.refund(account_id, amount, idempotency_key, metadata)
    except IdempotencyError:
        logger.info(f"Refund for batch {run_id} already processed, skipping")
        return 0
    except Exception:
        logger.exception(f"Failed to refund {amount} credits for batch {run_id}")
        return 0

    logger.info(f"Refunded {amount} credits for batch {run_id}")

    payload = {
        "feature": FEATURE_TYPE,
        "credits_refunded": amount,
        "failed_checks": amount,
        "batch_run_id": str(run_id),
    }
    if reason:
        payload["reason"] = reason
    try:
        notifier.notify(account_id, "credit_refund", payload)
    except Exception:
        logger.exception(f"Failed to notify account {account_id} about refund for batch {run_id}")

    return amount
