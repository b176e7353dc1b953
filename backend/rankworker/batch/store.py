"""Batch store: row-level reads and writes for rank batch runs.

Every write commits immediately so a crash between two steps leaves the
rows in a state the next tick can resume from. Status transitions that
must happen once (claiming a run, finishing a run) are conditional
UPDATEs and report whether this caller won.
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Session

from rankworker.batch.tally import RunTally
from rankworker.models.batch_run import (
    ACTIVE_RUN_STATUSES,
    CHECK_COMPLETED,
    CHECK_FAILED,
    CHECK_PENDING,
    CHECK_PROCESSING,
    RUN_PENDING,
    RUN_PROCESSING,
    TERMINAL_CHECK_STATUSES,
    BatchItem,
    BatchRun,
)
from rankworker.models.business import Business
from rankworker.models.rank_check import RankCheck

logger = logging.getLogger(__name__)


def _count(condition) -> Any:
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


class BatchStore:
    def __init__(self, db: Session):
        self.db = db

    def rollback(self) -> None:
        self.db.rollback()

    # --- Runs ---

    def get_run(self, run_id: uuid.UUID) -> BatchRun | None:
        return self.db.query(BatchRun).filter(BatchRun.id == run_id).first()

    def find_next_run(self, now: datetime) -> BatchRun | None:
        """Oldest eligible run not leased by another tick."""
        return self.db.query(BatchRun).filter(
            BatchRun.status.in_(ACTIVE_RUN_STATUSES),
            or_(BatchRun.scheduled_for.is_(None), BatchRun.scheduled_for <= now),
            or_(BatchRun.lease_expires_at.is_(None), BatchRun.lease_expires_at <= now),
        ).order_by(BatchRun.created_at.asc(), BatchRun.id.asc()).first()

    def claim_run(self, run: BatchRun, now: datetime, lease_seconds: int) -> str | None:
        """Take the selection lease on a run, moving it to processing if pending.

        Returns the lease token, or None if another tick claimed it first.
        """
        token = secrets.token_hex(16)
        values: dict[str, Any] = {
            "lease_token": token,
            "lease_expires_at": now + timedelta(seconds=lease_seconds),
        }
        if run.status == RUN_PENDING:
            values["status"] = RUN_PROCESSING
            values["started_at"] = now

        claimed = self.db.query(BatchRun).filter(
            BatchRun.id == run.id,
            BatchRun.status == run.status,
            or_(BatchRun.lease_expires_at.is_(None), BatchRun.lease_expires_at <= now),
        ).update(values, synchronize_session=False)
        self.db.commit()
        self.db.expire_all()
        return token if claimed else None

    def release_lease(self, run_id: uuid.UUID, token: str) -> None:
        self.db.query(BatchRun).filter(
            BatchRun.id == run_id,
            BatchRun.lease_token == token,
        ).update({"lease_token": None, "lease_expires_at": None}, synchronize_session=False)
        self.db.commit()

    def find_stale_runs(self, cutoff: datetime) -> list[BatchRun]:
        return self.db.query(BatchRun).filter(
            BatchRun.status == RUN_PROCESSING,
            BatchRun.started_at < cutoff,
        ).order_by(BatchRun.started_at.asc()).all()

    def finish_run(self, run_id: uuid.UUID, values: dict[str, Any], only_started_before: datetime | None = None) -> bool:
        """Move a run to a terminal status. False if it was already terminal."""
        query = self.db.query(BatchRun).filter(
            BatchRun.id == run_id,
            BatchRun.status.in_(ACTIVE_RUN_STATUSES),
        )
        if only_started_before is not None:
            query = query.filter(BatchRun.started_at < only_started_before)

        finished = query.update(
            {**values, "lease_token": None, "lease_expires_at": None},
            synchronize_session=False,
        )
        self.db.commit()
        self.db.expire_all()
        return bool(finished)

    def update_progress(self, run_id: uuid.UUID, tally: RunTally) -> None:
        self.db.query(BatchRun).filter(BatchRun.id == run_id).update({
            "processed_keywords": tally.resolved_items,
            "successful_checks": tally.successful_items,
            "failed_checks": tally.failed_items,
        }, synchronize_session=False)
        self.db.commit()

    def get_target_domain(self, account_id: uuid.UUID) -> str | None:
        business = self.db.query(Business).filter(Business.account_id == account_id).first()
        return business.business_website if business else None

    # --- Items ---

    def fetch_pending_items(self, run_id: uuid.UUID, limit: int) -> list[BatchItem]:
        return self.db.query(BatchItem).filter(
            BatchItem.batch_run_id == run_id,
            or_(BatchItem.desktop_status == CHECK_PENDING, BatchItem.mobile_status == CHECK_PENDING),
        ).order_by(BatchItem.created_at.asc(), BatchItem.id.asc()).limit(limit).all()

    def list_items(self, run_id: uuid.UUID) -> list[BatchItem]:
        return self.db.query(BatchItem).filter(
            BatchItem.batch_run_id == run_id,
        ).order_by(BatchItem.created_at.asc(), BatchItem.id.asc()).all()

    def reset_orphaned_checks(self, run_id: uuid.UUID) -> int:
        """Return sub-checks stuck in processing to pending.

        Only safe while holding the run lease: no live tick can own them.
        """
        reset = 0
        for device in ("desktop", "mobile"):
            column = getattr(BatchItem, f"{device}_status")
            reset += self.db.query(BatchItem).filter(
                BatchItem.batch_run_id == run_id,
                column == CHECK_PROCESSING,
            ).update({f"{device}_status": CHECK_PENDING}, synchronize_session=False)
        self.db.commit()
        if reset:
            logger.warning(f"Run {run_id}: reset {reset} orphaned sub-checks to pending")
        return reset

    def mark_check_processing(self, item: BatchItem, device: str) -> None:
        setattr(item, f"{device}_status", CHECK_PROCESSING)
        self.db.commit()

    def record_check_success(self, item: BatchItem, device: str, check: RankCheck) -> None:
        """Store the result row and complete the sub-check in one commit."""
        self.db.add(check)
        setattr(item, f"{device}_status", CHECK_COMPLETED)
        self.db.commit()

    def requeue_check(self, item: BatchItem, device: str, retry_count: int | None) -> None:
        """Send a sub-check back to pending; ``retry_count`` None leaves it unchanged."""
        setattr(item, f"{device}_status", CHECK_PENDING)
        item.error_message = None
        if retry_count is not None:
            item.retry_count = retry_count
        self.db.commit()

    def fail_check(self, item: BatchItem, device: str, error_message: str) -> None:
        setattr(item, f"{device}_status", CHECK_FAILED)
        item.error_message = error_message[:2000]
        self.db.commit()

    def tally(self, run_id: uuid.UUID) -> RunTally:
        desktop_done = BatchItem.desktop_status.in_(TERMINAL_CHECK_STATUSES)
        mobile_done = BatchItem.mobile_status.in_(TERMINAL_CHECK_STATUSES)
        desktop_ok = BatchItem.desktop_status == CHECK_COMPLETED
        mobile_ok = BatchItem.mobile_status == CHECK_COMPLETED
        desktop_failed = BatchItem.desktop_status == CHECK_FAILED
        mobile_failed = BatchItem.mobile_status == CHECK_FAILED

        row = self.db.query(
            func.count(BatchItem.id),
            _count(and_(desktop_done, mobile_done)),
            _count(and_(desktop_ok, mobile_ok)),
            _count(or_(desktop_failed, mobile_failed)),
            _count(desktop_ok) + _count(mobile_ok),
            _count(desktop_failed) + _count(mobile_failed),
        ).filter(BatchItem.batch_run_id == run_id).one()

        return RunTally(*(int(value or 0) for value in row))

    def error_messages(self, run_id: uuid.UUID) -> list[str]:
        rows = self.db.query(BatchItem.error_message).filter(
            BatchItem.batch_run_id == run_id,
            BatchItem.error_message.isnot(None),
        ).all()
        return [row[0] for row in rows if row[0]]
