"""Rank batch tasks: the once-a-minute tick that advances batch runs."""

import logging
import uuid

from sqlalchemy.orm import Session

from rankworker.tasks.celery_app import celery_app
from rankworker.batch.driver import advance_one_tick
from rankworker.batch.store import BatchStore
from rankworker.config import Settings, get_settings
from rankworker.models.base import open_session, utcnow
from rankworker.models.batch_tick import BatchTick
from rankworker.services.credit_ledger import SqlCreditLedger
from rankworker.services.notifier import DatabaseNotifier
from rankworker.services.ranking_client import DataForSEOClient, RankingProvider

logger = logging.getLogger(__name__)


def run_tick(db: Session, provider: RankingProvider, settings: Settings, **tick_kwargs) -> dict:
    """Advance one tick against ``db`` and record it in rank_batch_ticks."""
    tick = BatchTick(id=uuid.uuid4(), started_at=utcnow(), status="running")
    db.add(tick)
    db.commit()
    tick_id = tick.id

    try:
        result = advance_one_tick(
            BatchStore(db),
            provider,
            SqlCreditLedger(db),
            DatabaseNotifier(db, settings),
            settings=settings,
            **tick_kwargs,
        )
    except Exception as e:
        db.rollback()
        db.query(BatchTick).filter(BatchTick.id == tick_id).update({
            "status": "failed",
            "finished_at": utcnow(),
            "error_message": str(e)[:2000],
        }, synchronize_session=False)
        db.commit()
        logger.error(f"Rank batch tick failed: {e}")
        raise

    summary = result.summary()
    db.query(BatchTick).filter(BatchTick.id == tick_id).update({
        "status": "idle" if result.status == "idle" else "success",
        "finished_at": utcnow(),
        "batch_run_id": result.batch_run_id,
        "items_processed": result.pass_result.items_processed if result.pass_result else 0,
        "reaped_runs": len(result.reaped_run_ids),
        "error_message": result.message if result.status == "run_failed" else None,
    }, synchronize_session=False)
    db.commit()

    logger.info(f"Rank batch tick: {summary}")
    return summary


@celery_app.task(name="rankworker.tasks.rank_batch_tasks.process_rank_batch")
def process_rank_batch():
    """Process a bounded slice of the oldest queued rank batch run."""
    settings = get_settings()
    db = open_session()
    provider = DataForSEOClient.from_settings(settings)
    try:
        return run_tick(db, provider, settings)
    finally:
        provider.close()
        db.close()
