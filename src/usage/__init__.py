"""Daily usage ledger."""

from src.usage.ledger import UsageLedger
from src.usage.models import DailyTokenSummary, MonthlyUsage, UsageRecord

__all__ = ["DailyTokenSummary", "MonthlyUsage", "UsageLedger", "UsageRecord"]
