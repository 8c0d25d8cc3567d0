from burnrate.monitor.refresher import ProfileMonitor
from burnrate.monitor.scheduler import MonitorScheduler

__all__ = ["MonitorScheduler", "ProfileMonitor"]
