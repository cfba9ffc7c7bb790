"""Fixed-window rate limiter backed by the database.

Counters live in the rate_limit_counters table so every app instance sees
the same counts. A window opens on the first hit for a key and the count
resets once reset_at has passed.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from typing import Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError

from ..database import async_session
from ..models import RateLimitCounter
from ..utils.db_utils import retry_on_lock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class RateLimitDecision:
    """Outcome of counting one request."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after: int  # seconds until the window resets


class RateLimiter:
    """Counts hits per key in fixed windows."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or async_session

    async def hit(
        self,
        key: str,
        limit: int,
        window_seconds: int = 60,
        now: Optional[datetime] = None,
    ) -> RateLimitDecision:
        """Count one request for key and decide whether it is allowed."""
        now = now or utcnow()
        increment = partial(self._increment, key, window_seconds, now)
        try:
            count, reset_at = await retry_on_lock(increment)
        except IntegrityError:
            # Another request created the counter first; count against it
            count, reset_at = await retry_on_lock(increment)

        retry_after = max(0, math.ceil((reset_at - now).total_seconds()))
        decision = RateLimitDecision(
            allowed=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset_at=reset_at,
            retry_after=retry_after,
        )
        if not decision.allowed:
            logger.warning(f"Rate limit exceeded for {key} ({count}/{limit})")
        return decision

    async def _increment(self, key: str, window_seconds: int, now: datetime):
        async with self._session_factory() as session:
            bumped = await session.execute(
                update(RateLimitCounter)
                .where(RateLimitCounter.key == key, RateLimitCounter.reset_at > now)
                .values(count=RateLimitCounter.count + 1)
                .execution_options(synchronize_session=False)
            )
            if bumped.rowcount == 0:
                reset_at = now + timedelta(seconds=window_seconds)
                renewed = await session.execute(
                    update(RateLimitCounter)
                    .where(RateLimitCounter.key == key, RateLimitCounter.reset_at <= now)
                    .values(count=1, reset_at=reset_at)
                    .execution_options(synchronize_session=False)
                )
                if renewed.rowcount == 0:
                    session.add(RateLimitCounter(key=key, count=1, reset_at=reset_at))
                    await session.flush()

            result = await session.execute(
                select(RateLimitCounter.count, RateLimitCounter.reset_at)
                .where(RateLimitCounter.key == key)
            )
            count, reset_at = result.one()
            await session.commit()
        return count, reset_at

    async def reset(self, key: str):
        """Drop the counter for key."""
        async with self._session_factory() as session:
            await session.execute(delete(RateLimitCounter).where(RateLimitCounter.key == key))
            await session.commit()

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete counters whose window has ended."""
        now = now or utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                delete(RateLimitCounter).where(RateLimitCounter.reset_at <= now)
            )
            await session.commit()
        return result.rowcount or 0


# Global instance
rate_limiter = RateLimiter()
