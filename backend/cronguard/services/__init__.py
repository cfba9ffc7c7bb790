"""Services for ping ingestion, liveness sweeps, alerting and housekeeping."""
from .ingestor import PingIngestor, MonitorNotFound
from .sweeper import LivenessSweeper
from .alerter import AlerterService
from .rate_limiter import RateLimiter
from .retention import RetentionService
from .scheduler import SchedulerService

__all__ = [
    "PingIngestor",
    "MonitorNotFound",
    "LivenessSweeper",
    "AlerterService",
    "RateLimiter",
    "RetentionService",
    "SchedulerService",
]
