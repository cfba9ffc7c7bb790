"""CronGuard - dead man's switch monitoring for scheduled jobs."""
__version__ = "1.0.0"
