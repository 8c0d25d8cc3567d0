from burnrate.usage.event_log import EventRecord, EventScan, scan_event_log
from burnrate.usage.live import LiveUsage, LiveUsageClient, read_credentials
from burnrate.usage.models import UNKNOWN_PERCENT, DailyActivitySummary, UsageSummary
from burnrate.usage.projector import SummaryView, project
from burnrate.usage.quota import QuotaResolver, load_quota_table
from burnrate.usage.reconcile import reconcile
from burnrate.usage.stats_cache import AggregateSnapshot, read_stats_cache

__all__ = [
    "AggregateSnapshot",
    "DailyActivitySummary",
    "EventRecord",
    "EventScan",
    "LiveUsage",
    "LiveUsageClient",
    "QuotaResolver",
    "SummaryView",
    "UNKNOWN_PERCENT",
    "UsageSummary",
    "load_quota_table",
    "project",
    "read_credentials",
    "read_stats_cache",
    "reconcile",
    "scan_event_log",
]
