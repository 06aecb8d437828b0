"""
onsweb.api.rate_limit — Per-Client Request Rate Limiting
==========================================================

Sliding-window counters keyed by (policy bucket, client IP), persisted in
the ``rate_limit_events`` table so limits survive restarts and are shared
by every worker.  Policies live in :mod:`onsweb.constants`:

* general — 100 requests / 15 min on every API route
* auth — 10 / 15 min on login, registration and refresh
* content_creation — 50 / hour
* media_upload — 20 / hour
* event_registration — 10 / hour

Exceeding a window raises :class:`RateLimitedError` (HTTP 429 with a
``Retry-After`` header).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends, Request
from sqlalchemy import Engine, delete, func, select
from sqlalchemy.orm import Session

from onsweb.api.deps import get_engine
from onsweb.constants import RateLimitPolicy
from onsweb.database.models import RateLimitEvent, as_utc
from onsweb.errors import RateLimitedError

logger = logging.getLogger(__name__)


class RateLimiter:
    """DB-backed sliding-window rate limiter."""

    def __init__(self, *, engine: Engine) -> None:
        self.engine = engine

    def check(self, policy: RateLimitPolicy, caller: str) -> tuple[bool, dict[str, Any]]:
        """Check whether *caller* is within *policy*.

        Returns (allowed, info) where info contains:
          - remaining: requests remaining in the window
          - reset: seconds until the oldest request expires
          - limit: the max requests per window
        """
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=policy.window_seconds)

        with Session(self.engine) as session:
            session.execute(
                delete(RateLimitEvent).where(
                    RateLimitEvent.bucket == policy.bucket,
                    RateLimitEvent.caller == caller,
                    RateLimitEvent.timestamp < cutoff,
                )
            )
            timestamps = session.scalars(
                select(RateLimitEvent.timestamp)
                .where(
                    RateLimitEvent.bucket == policy.bucket,
                    RateLimitEvent.caller == caller,
                )
                .order_by(RateLimitEvent.timestamp.asc())
            ).all()
            session.commit()

        count = len(timestamps)
        if count >= policy.max_requests:
            oldest = as_utc(timestamps[0])
            reset = (oldest + timedelta(seconds=policy.window_seconds) - now).total_seconds()
            return False, {
                "remaining": 0,
                "reset": max(1, int(reset) + 1),
                "limit": policy.max_requests,
            }

        return True, {
            "remaining": policy.max_requests - count,
            "reset": policy.window_seconds,
            "limit": policy.max_requests,
        }

    def record(self, policy: RateLimitPolicy, caller: str) -> dict[str, Any]:
        """Record one request and return the updated window info."""
        with Session(self.engine) as session:
            session.add(RateLimitEvent(bucket=policy.bucket, caller=caller))
            session.flush()
            count = session.scalar(
                select(func.count())
                .select_from(RateLimitEvent)
                .where(
                    RateLimitEvent.bucket == policy.bucket,
                    RateLimitEvent.caller == caller,
                )
            ) or 0
            session.commit()

        return {
            "remaining": max(0, policy.max_requests - count),
            "reset": policy.window_seconds,
            "limit": policy.max_requests,
        }

    def reset(self, bucket: str | None = None) -> None:
        """Clear rate limit state for *bucket*, or everything when ``None``."""
        with Session(self.engine) as session:
            stmt = delete(RateLimitEvent)
            if bucket is not None:
                stmt = stmt.where(RateLimitEvent.bucket == bucket)
            session.execute(stmt)
            session.commit()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_rate_limiter(engine: Engine = Depends(get_engine)) -> RateLimiter:
    return RateLimiter(engine=engine)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit(policy: RateLimitPolicy):
    """Dependency factory enforcing *policy* per client IP.

    Use as ``dependencies=[Depends(rate_limit(AUTH_LIMIT))]`` on a route or
    router.
    """

    async def _enforce(
        request: Request,
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> None:
        caller = client_ip(request)
        allowed, info = await asyncio.to_thread(limiter.check, policy, caller)
        if not allowed:
            logger.warning(
                "Rate limit %s exceeded for %s: %d requests per %ds",
                policy.bucket, caller, policy.max_requests, policy.window_seconds,
            )
            raise RateLimitedError(
                "Too many requests, please try again later.",
                retry_after=info["reset"],
                details={"limit": info["limit"], "retry_after": info["reset"]},
            )
        await asyncio.to_thread(limiter.record, policy, caller)

    return _enforce
