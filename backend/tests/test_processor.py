"""Item processor tests."""

from unittest.mock import MagicMock

from conftest import NOW, FakeProvider

from rankworker.batch.processor import ItemPass, ItemProcessor
from rankworker.models.batch_run import BatchItem, BatchRun
from rankworker.models.rank_check import RankCheck
from rankworker.services.ranking_client import RankingProviderError, RankResult

TRANSIENT = RankingProviderError("Request timeout (30 seconds)")
PERMANENT = RankingProviderError("DFS-40501 Task failed: Invalid Field: 'keyword'.")


def _processor(store, provider, **kwargs):
    kwargs.setdefault("call_delay", 0)
    kwargs.setdefault("sleep", lambda seconds: None)
    return ItemProcessor(store, provider, **kwargs)


def _items(db, run_id):
    return db.query(BatchItem).filter(BatchItem.batch_run_id == run_id).order_by(BatchItem.created_at).all()


def _claimed(store, run_id):
    store.claim_run(store.get_run(run_id), NOW, lease_seconds=300)
    return store.get_run(run_id)


class TestItemPass:

    def test_increments_once(self):
        item_pass = ItemPass(starting_retry_count=1)

        assert item_pass.next_retry_count() == 2
        assert item_pass.next_retry_count() is None


class TestProcess:

    def test_all_succeed(self, store, db, make_run, provider):
        run_id = make_run(n_items=2)
        result = _processor(store, provider).process(_claimed(store, run_id), "example.com")

        assert result.items_processed == 2
        assert result.successful_checks == 4
        assert [call[3] for call in provider.calls] == ["desktop", "mobile", "desktop", "mobile"]
        assert all(call[1] == 2840 for call in provider.calls)
        assert all((i.desktop_status, i.mobile_status) == ("completed", "completed") for i in _items(db, run_id))
        assert db.query(RankCheck).filter(RankCheck.batch_run_id == run_id).count() == 4

    def test_result_row_contents(self, store, db, make_run):
        provider = FakeProvider({("keyword 1", "desktop"): RankResult(found=True, position=7, url="https://example.com/a")})
        run_id = make_run(n_items=1)
        _processor(store, provider).process(_claimed(store, run_id), "example.com")

        check = db.query(RankCheck).filter(RankCheck.device == "desktop").one()
        assert check.position == 7
        assert check.found_url == "https://example.com/a"
        assert check.search_query_used == "keyword 1"
        assert check.location_code == 2840

    def test_not_found_still_completes(self, store, db, make_run):
        provider = FakeProvider({("keyword 1", "mobile"): RankResult(found=False)})
        run_id = make_run(n_items=1)
        _processor(store, provider).process(_claimed(store, run_id), "example.com")

        item = _items(db, run_id)[0]
        assert item.mobile_status == "completed"
        check = db.query(RankCheck).filter(RankCheck.device == "mobile").one()
        assert check.position is None

    def test_transient_mobile_error_goes_back_to_pending(self, store, db, make_run):
        provider = FakeProvider({("keyword 1", "mobile"): TRANSIENT})
        run_id = make_run(n_items=1, retry_count=0)
        result = _processor(store, provider).process(_claimed(store, run_id), "example.com")

        item = _items(db, run_id)[0]
        assert item.desktop_status == "completed"
        assert item.mobile_status == "pending"
        assert item.retry_count == 1
        assert item.error_message is None
        assert result.retried_checks == 1
        assert [i.id for i in store.fetch_pending_items(run_id, 15)] == [item.id]

    def test_retry_count_bumped_once_when_both_devices_retry(self, store, db, make_run):
        provider = FakeProvider({
            ("keyword 1", "desktop"): TRANSIENT,
            ("keyword 1", "mobile"): TRANSIENT,
        })
        run_id = make_run(n_items=1, retry_count=1)
        result = _processor(store, provider).process(_claimed(store, run_id), "example.com")

        item = _items(db, run_id)[0]
        assert (item.desktop_status, item.mobile_status) == ("pending", "pending")
        assert item.retry_count == 2
        assert result.retried_checks == 2

    def test_retry_count_grows_by_one_per_pass(self, store, db, make_run):
        provider = FakeProvider({
            ("keyword 1", "desktop"): TRANSIENT,
            ("keyword 1", "mobile"): TRANSIENT,
        })
        run_id = make_run(n_items=1)
        processor = _processor(store, provider)
        run = _claimed(store, run_id)

        counts = []
        for _ in range(3):
            processor.process(run, "example.com")
            counts.append(_items(db, run_id)[0].retry_count)

        assert counts == [1, 2, 3]

    def test_retries_exhausted_fails(self, store, db, make_run):
        provider = FakeProvider({("keyword 1", "desktop"): TRANSIENT})
        run_id = make_run(n_items=1, retry_count=3)
        result = _processor(store, provider).process(_claimed(store, run_id), "example.com")

        item = _items(db, run_id)[0]
        assert item.desktop_status == "failed"
        assert item.error_message == "Desktop: Request timeout (30 seconds)"
        assert item.retry_count == 3
        assert result.failed_checks == 1

    def test_permanent_error_fails_without_retry(self, store, db, make_run):
        provider = FakeProvider({("keyword 2", "desktop"): PERMANENT})
        run_id = make_run(n_items=3)
        result = _processor(store, provider).process(_claimed(store, run_id), "example.com")

        items = _items(db, run_id)
        assert items[1].desktop_status == "failed"
        assert items[1].mobile_status == "completed"
        assert items[1].retry_count == 0
        assert items[1].error_message.startswith("Desktop: DFS-40501")
        assert result.failed_checks == 1
        assert result.successful_checks == 5

    def test_only_pending_subchecks_are_run(self, store, make_run, provider):
        run_id = make_run(n_items=2, status="processing", statuses=[
            ("completed", "pending"),
            ("failed", "completed"),
        ])
        _processor(store, provider).process(_claimed(store, run_id), "example.com")

        assert provider.calls == [("keyword 1", 2840, "example.com", "mobile")]

    def test_respects_batch_size(self, store, make_run, provider):
        run_id = make_run(n_items=5)
        result = _processor(store, provider, batch_size=2).process(_claimed(store, run_id), "example.com")

        assert result.items_processed == 2
        assert [call[0] for call in provider.calls] == ["keyword 1", "keyword 1", "keyword 2", "keyword 2"]

    def test_no_pending_items(self, store, make_run, provider):
        run_id = make_run(n_items=1, status="processing", statuses=[("completed", "completed")])
        result = _processor(store, provider).process(_claimed(store, run_id), "example.com")

        assert result.no_pending_items
        assert provider.calls == []

    def test_stops_at_deadline(self, store, make_run, provider):
        clock = MagicMock(side_effect=[0.0, 50.0])
        run_id = make_run(n_items=3)
        result = _processor(store, provider, clock=clock).process(_claimed(store, run_id), "example.com", deadline=10.0)

        assert result.items_processed == 1
        assert result.stopped_early is True
        assert len(provider.calls) == 2

    def test_sleeps_between_provider_calls(self, store, make_run, provider):
        sleep = MagicMock()
        run_id = make_run(n_items=2)
        _processor(store, provider, call_delay=0.05, sleep=sleep).process(_claimed(store, run_id), "example.com")

        assert sleep.call_count == 4
        sleep.assert_called_with(0.05)

    def test_counters_recomputed_from_all_items(self, store, db, make_run, provider):
        run_id = make_run(n_items=3, status="processing", statuses=[
            ("completed", "failed"),
            ("pending", "pending"),
            ("pending", "pending"),
        ])
        _processor(store, provider, batch_size=1).process(_claimed(store, run_id), "example.com")

        run = db.get(BatchRun, run_id)
        assert run.processed_keywords == 2
        assert run.successful_checks == 1
        assert run.failed_checks == 1
