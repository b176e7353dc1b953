"""Item processor: one bounded pass over a run's pending sub-checks.

Items are checked one at a time, desktop before mobile, with a short pause
between provider calls to stay under the provider's rate limits.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

from rankworker.batch.store import BatchStore
from rankworker.models.base import utcnow
from rankworker.models.batch_run import CHECK_PENDING, DEVICES, BatchItem, BatchRun
from rankworker.models.rank_check import RankCheck
from rankworker.services.ranking_client import RankingProvider
from rankworker.services.retry_policy import MAX_RETRIES, should_retry

logger = logging.getLogger(__name__)


@dataclass
class ItemPass:
    """Retry bookkeeping for one item during one pass.

    Both sub-checks are judged against the retry count the item had when the
    pass started, and the count is bumped at most once per pass.
    """

    starting_retry_count: int
    retry_incremented: bool = False

    def next_retry_count(self) -> int | None:
        if self.retry_incremented:
            return None
        self.retry_incremented = True
        return self.starting_retry_count + 1


@dataclass
class PassResult:
    items_processed: int = 0
    successful_checks: int = 0
    failed_checks: int = 0
    retried_checks: int = 0
    stopped_early: bool = False
    item_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def no_pending_items(self) -> bool:
        return self.items_processed == 0 and not self.stopped_early


class ItemProcessor:
    def __init__(
        self,
        store: BatchStore,
        provider: RankingProvider,
        batch_size: int = 15,
        call_delay: float = 0.05,
        default_location_code: int = 2840,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.provider = provider
        self.batch_size = batch_size
        self.call_delay = call_delay
        self.default_location_code = default_location_code
        self.sleep = sleep
        self.clock = clock

    def process(self, run: BatchRun, target_domain: str, deadline: float | None = None) -> PassResult:
        """Advance up to ``batch_size`` items, then refresh the run counters.

        ``deadline`` is a ``clock()`` value; no new item is started after it.
        """
        run_id = run.id
        account_id = run.account_id
        result = PassResult()

        items = self.store.fetch_pending_items(run_id, self.batch_size)
        if not items:
            logger.info(f"Run {run_id}: no pending items")
            return result

        logger.info(f"Run {run_id}: processing {len(items)} items")
        for item in items:
            if deadline is not None and self.clock() >= deadline:
                logger.warning(f"Run {run_id}: tick budget spent, leaving remaining items for next tick")
                result.stopped_early = True
                break
            self._process_item(run_id, account_id, item, target_domain, result)
            result.items_processed += 1
            result.item_ids.append(item.id)

        self.store.update_progress(run_id, self.store.tally(run_id))
        logger.info(
            f"Run {run_id}: pass done, {result.successful_checks} ok, "
            f"{result.failed_checks} failed, {result.retried_checks} retrying"
        )
        return result

    def _process_item(
        self,
        run_id: uuid.UUID,
        account_id: uuid.UUID,
        item: BatchItem,
        target_domain: str,
        result: PassResult,
    ) -> None:
        item_pass = ItemPass(starting_retry_count=item.retry_count or 0)
        location_code = item.location_code or self.default_location_code
        logger.info(f"  -> Keyword: '{item.search_term}'")

        for device in DEVICES:
            if item.status_for(device) != CHECK_PENDING:
                continue
            self._check(run_id, account_id, item, device, location_code, target_domain, item_pass, result)
            self.sleep(self.call_delay)

    def _check(
        self,
        run_id: uuid.UUID,
        account_id: uuid.UUID,
        item: BatchItem,
        device: str,
        location_code: int,
        target_domain: str,
        item_pass: ItemPass,
        result: PassResult,
    ) -> None:
        self.store.mark_check_processing(item, device)

        try:
            rank = self.provider.check(item.search_term, location_code, target_domain, device)
        except Exception as e:
            error = str(e) or "Unknown error"
            self._handle_failure(item, device, error, item_pass, result)
            return

        self.store.record_check_success(item, device, RankCheck(
            id=uuid.uuid4(),
            account_id=account_id,
            keyword_id=item.keyword_id,
            batch_run_id=run_id,
            search_query_used=item.search_term,
            location_code=location_code,
            device=device,
            position=rank.position,
            found_url=rank.url,
            checked_at=utcnow(),
        ))
        result.successful_checks += 1
        logger.info(f"     {device}: {'#' + str(rank.position) if rank.found else 'not found'}")

    def _handle_failure(
        self,
        item: BatchItem,
        device: str,
        error: str,
        item_pass: ItemPass,
        result: PassResult,
    ) -> None:
        if should_retry(item_pass.starting_retry_count, error):
            new_count = item_pass.next_retry_count()
            self.store.requeue_check(item, device, new_count)
            result.retried_checks += 1
            attempt = item_pass.starting_retry_count + 2
            logger.info(f"     {device}: retrying (attempt {attempt}/{MAX_RETRIES + 1}): {error}")
        else:
            self.store.fail_check(item, device, f"{device.capitalize()}: {error}")
            result.failed_checks += 1
            logger.warning(f"     {device}: failed: {error}")
