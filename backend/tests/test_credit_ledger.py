"""SQL credit ledger tests."""

import uuid

import pytest
from sqlalchemy.exc import SQLAlchemyError

from rankworker.models.batch_run import BatchRun
from rankworker.models.credit_ledger import CreditLedgerEntry
from rankworker.services.credit_ledger import IdempotencyError, refund_key


class TestSqlCreditLedger:

    def test_debit_and_refund_move_balance(self, ledger):
        account_id = uuid.uuid4()
        ledger.debit(account_id, 10, "rank_batch:abc", {"feature_type": "rank_tracking"})
        ledger.refund(account_id, 4, "rank_batch:abc", {"feature_type": "rank_tracking"})

        assert ledger.get_balance(account_id) == -6

    def test_refund_uses_derived_key(self, ledger, db):
        account_id = uuid.uuid4()
        ledger.refund(account_id, 2, "rank_batch:abc", {"description": "Refund", "batch_run_id": "r1"})

        entry = db.query(CreditLedgerEntry).one()
        assert entry.idempotency_key == refund_key("rank_batch:abc") == "rank_batch:abc:refund"
        assert entry.transaction_type == "feature_refund"
        assert entry.description == "Refund"
        assert entry.extra_data == {"batch_run_id": "r1"}

    def test_duplicate_refund_rejected(self, ledger):
        account_id = uuid.uuid4()
        ledger.refund(account_id, 2, "rank_batch:abc", {})

        with pytest.raises(IdempotencyError):
            ledger.refund(account_id, 2, "rank_batch:abc", {})

        assert ledger.get_balance(account_id) == 2

    def test_balance_of_unknown_account_is_zero(self, ledger):
        assert ledger.get_balance(uuid.uuid4()) == 0

    def test_failed_write_leaves_session_usable(self, engine, ledger, db):
        CreditLedgerEntry.__table__.drop(engine)

        with pytest.raises(SQLAlchemyError):
            ledger.refund(uuid.uuid4(), 2, "rank_batch:abc", {})

        assert db.query(BatchRun).count() == 0
