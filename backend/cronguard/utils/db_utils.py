"""Time helpers and the transient-error retry used around commits."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError, InterfaceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings of driver errors that clear up on their own
TRANSIENT_ERROR_MARKERS = (
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
    "database is locked",
)


def utcnow() -> datetime:
    """Naive UTC now; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_z(value: datetime) -> str:
    return value.isoformat() + "Z"


def is_transient_error(error: Exception) -> bool:
    if not isinstance(error, (OperationalError, InterfaceError)):
        return False
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


async def retry_on_lock(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 0.1,
) -> T:
    """Await `operation()`, retrying transient DB errors with doubling delays.

    `operation` must run a whole transaction in a session it opens itself. A
    session whose flush or commit failed cannot be committed again, so
    passing `session.commit` here never recovers anything.

    Non-transient errors propagate immediately; the last transient error is
    re-raised once `attempts` are used up.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except (OperationalError, InterfaceError) as e:
            if not is_transient_error(e) or attempt == attempts:
                raise
            delay = base_delay * 2 ** (attempt - 1)
            logger.warning(f"Transient database error ({e.__class__.__name__}), retry {attempt}/{attempts - 1} in {delay}s")
            await asyncio.sleep(delay)
