"""ORM model exports."""

from jquants_ingest import __version__
from jquants_ingest.models.base import Base
from jquants_ingest.models.earnings_calendar import EarningsCalendar
from jquants_ingest.models.equity_bar_daily import EquityBarDaily
from jquants_ingest.models.equity_master import EquityMaster
from jquants_ingest.models.financial_disclosure import FinancialDisclosure
from jquants_ingest.models.investor_type_trading import InvestorTypeTrading
from jquants_ingest.models.job_heartbeat import JobHeartbeat
from jquants_ingest.models.job_lock import JobLock
from jquants_ingest.models.job_run import JobName, JobRun, JobRunItem, JobRunStatus
from jquants_ingest.models.topix_bar_daily import TopixBarDaily
from jquants_ingest.models.trading_calendar import TradingCalendar

__all__ = [
    "__version__",
    "Base",
    "EarningsCalendar",
    "EquityBarDaily",
    "EquityMaster",
    "FinancialDisclosure",
    "InvestorTypeTrading",
    "JobHeartbeat",
    "JobLock",
    "JobName",
    "JobRun",
    "JobRunItem",
    "JobRunStatus",
    "TopixBarDaily",
    "TradingCalendar",
]
