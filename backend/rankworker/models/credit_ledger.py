"""Credit ledger model: signed credit movements keyed by idempotency key."""

from sqlalchemy import Column, String, Integer, Text, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from rankworker.models.base import Base, TimestampMixin, UUIDMixin


class CreditLedgerEntry(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "credit_ledger_entries"

    account_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # negative = debit
    transaction_type = Column(String(50), nullable=False)  # feature_debit, feature_refund
    idempotency_key = Column(String(255), unique=True, nullable=False, index=True)
    feature_type = Column(String(50))
    description = Column(Text)
    extra_data = Column(JSON().with_variant(JSONB(), "postgresql"), default=dict)
