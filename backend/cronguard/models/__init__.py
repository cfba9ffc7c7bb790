"""Database models."""
from .settings import Setting
from .monitor import Monitor, MonitorState
from .ping import Ping, PingKind
from .incident import Incident
from .alert import Alert
from .rate_limit import RateLimitCounter

__all__ = [
    "Setting",
    "Monitor",
    "MonitorState",
    "Ping",
    "PingKind",
    "Incident",
    "Alert",
    "RateLimitCounter",
]
