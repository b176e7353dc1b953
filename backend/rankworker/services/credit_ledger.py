"""Credit ledger backed by credit_ledger_entries.

Every movement carries an idempotency key with a unique constraint, so a
replayed debit or refund is rejected instead of applied twice.
"""

import logging
import uuid
from typing import Any, Protocol

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from rankworker.models.credit_ledger import CreditLedgerEntry

logger = logging.getLogger(__name__)


class IdempotencyError(Exception):
    """The idempotency key was already used; the operation already happened."""

    def __init__(self, idempotency_key: str):
        super().__init__(f"Operation already processed: {idempotency_key}")
        self.idempotency_key = idempotency_key


class CreditLedger(Protocol):
    def debit(self, account_id: uuid.UUID, amount: int, idempotency_key: str, metadata: dict[str, Any]) -> None:
        ...

    def refund(self, account_id: uuid.UUID, amount: int, idempotency_key: str, metadata: dict[str, Any]) -> None:
        ...

    def get_balance(self, account_id: uuid.UUID) -> int:
        ...


def refund_key(idempotency_key: str) -> str:
    """Refunds compensate the original debit under a derived key."""
    return f"{idempotency_key}:refund"


class SqlCreditLedger:
    def __init__(self, db: Session):
        self.db = db

    def debit(self, account_id: uuid.UUID, amount: int, idempotency_key: str, metadata: dict[str, Any]) -> None:
        self._record(account_id, -amount, "feature_debit", idempotency_key, metadata)

    def refund(self, account_id: uuid.UUID, amount: int, idempotency_key: str, metadata: dict[str, Any]) -> None:
        self._record(account_id, amount, "feature_refund", refund_key(idempotency_key), metadata)

    def get_balance(self, account_id: uuid.UUID) -> int:
        total = self.db.query(func.coalesce(func.sum(CreditLedgerEntry.amount), 0)).filter(
            CreditLedgerEntry.account_id == account_id,
        ).scalar()
        return int(total)

    def _record(
        self,
        account_id: uuid.UUID,
        amount: int,
        transaction_type: str,
        idempotency_key: str,
        metadata: dict[str, Any],
    ) -> None:
        metadata = dict(metadata or {})
        try:
            existing = self.db.query(CreditLedgerEntry.id).filter(
                CreditLedgerEntry.idempotency_key == idempotency_key,
            ).first()
            if existing:
                raise IdempotencyError(idempotency_key)

            self.db.add(CreditLedgerEntry(
                id=uuid.uuid4(),
                account_id=account_id,
                amount=amount,
                transaction_type=transaction_type,
                idempotency_key=idempotency_key,
                feature_type=metadata.pop("feature_type", None),
                description=metadata.pop("description", None),
                extra_data=metadata,
            ))
            self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent writer using the same key
            self.db.rollback()
            raise IdempotencyError(idempotency_key)
        except SQLAlchemyError:
            # The session is shared with the batch store; leave it usable
            self.db.rollback()
            raise

        logger.info(f"Ledger {transaction_type} {amount:+d} for account {account_id} ({idempotency_key})")
