"""Shared fixtures: in-memory database, run factory, fake ranking provider."""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import rankworker.models  # noqa: F401
from rankworker.batch.store import BatchStore
from rankworker.config import Settings
from rankworker.models.base import Base
from rankworker.models.batch_run import BatchItem, BatchRun
from rankworker.models.business import Business
from rankworker.services.credit_ledger import SqlCreditLedger
from rankworker.services.ranking_client import RankResult

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeProvider:
    """Ranking provider double.

    ``responses`` maps (search_term, device) to a RankResult, an exception to
    raise, or a list of those consumed one call at a time.
    """

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []

    def check(self, keyword, location_code, target_domain, device):
        self.calls.append((keyword, location_code, target_domain, device))
        outcome = self.responses.get(
            (keyword, device),
            RankResult(found=True, position=3, url=f"https://{target_domain}/"),
        )
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return BatchStore(db)


@pytest.fixture
def ledger(db):
    return SqlCreditLedger(db)


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        provider_call_delay_seconds=0,
        batch_items_per_execution=15,
        stale_run_threshold_minutes=120,
    )


@pytest.fixture
def make_run(db):
    """Create a run with ``n_items`` items and return its id."""

    def _make(
        n_items=3,
        status="pending",
        account_id=None,
        created_at=NOW - timedelta(minutes=10),
        started_at=None,
        scheduled_for=None,
        idempotency_key="auto",
        statuses=None,
        retry_count=0,
        website="https://www.example.com",
        lease_expires_at=None,
    ):
        account_id = account_id or uuid.uuid4()
        run_id = uuid.uuid4()

        if website is not None and not db.query(Business).filter(Business.account_id == account_id).first():
            db.add(Business(
                id=uuid.uuid4(),
                account_id=account_id,
                name="Example Co",
                business_website=website,
                created_at=created_at,
                updated_at=created_at,
            ))

        if idempotency_key == "auto":
            idempotency_key = f"rank_batch:{account_id}:{run_id}"

        db.add(BatchRun(
            id=run_id,
            account_id=account_id,
            idempotency_key=idempotency_key,
            status=status,
            total_keywords=n_items,
            estimated_credits=n_items * 2,
            created_at=created_at,
            updated_at=created_at,
            started_at=started_at,
            scheduled_for=scheduled_for,
            lease_token="other-tick" if lease_expires_at else None,
            lease_expires_at=lease_expires_at,
        ))
        for i in range(n_items):
            desktop, mobile = statuses[i] if statuses else ("pending", "pending")
            db.add(BatchItem(
                id=uuid.uuid4(),
                batch_run_id=run_id,
                keyword_id=uuid.uuid4(),
                search_term=f"keyword {i + 1}",
                desktop_status=desktop,
                mobile_status=mobile,
                retry_count=retry_count,
                created_at=created_at + timedelta(seconds=i),
                updated_at=created_at,
            ))
        db.commit()
        return run_id

    return _make
