"""Models package: import all models so Base.metadata sees every table."""

from rankworker.models.base import Base  # noqa: F401
from rankworker.models.batch_run import BatchRun, BatchItem  # noqa: F401
from rankworker.models.batch_tick import BatchTick  # noqa: F401
from rankworker.models.business import Business  # noqa: F401
from rankworker.models.credit_ledger import CreditLedgerEntry  # noqa: F401
from rankworker.models.notification import Notification  # noqa: F401
from rankworker.models.rank_check import RankCheck  # noqa: F401
