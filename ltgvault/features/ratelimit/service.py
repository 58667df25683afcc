"""
Per-account request throttle.

Fixed 60 second window over the request_log table. Every admitted metered
request is logged before its work runs, so failed and in-flight requests
count toward the window too.

Fail-open: if the count query errors, the request is allowed.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
import logging
from sqlalchemy import select, insert, func

from ltgvault.core.config import settings
from ltgvault.core.database import get_db_session, request_log, utcnow
from ltgvault.core.errors import RateLimitedError
from ltgvault.core.metrics import ratelimit_block_total


logger = logging.getLogger("ltgvault")

WINDOW_SECONDS = 60


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    remaining: int
    reset_in: int

    def to_dict(self) -> dict:
        return {"remaining": self.remaining, "resetIn": self.reset_in}


def _count_recent(account_id: str, now: datetime) -> int:
    since = now - timedelta(seconds=WINDOW_SECONDS)
    with get_db_session() as session:
        return int(
            session.execute(
                select(func.count())
                .select_from(request_log)
                .where(request_log.c.account_id == account_id)
                .where(request_log.c.occurred_at >= since)
            ).scalar()
            or 0
        )


def check_rate(account_id: str, now: Optional[datetime] = None, limit: Optional[int] = None) -> RateLimitStatus:
    cap = limit if limit is not None else settings.RATE_LIMIT_PER_MINUTE
    current = now or utcnow()
    try:
        used = _count_recent(account_id, current)
    except Exception as exc:
        logger.warning(
            "[ratelimit] fail-open",
            extra={"account_id": account_id, "error_code": type(exc).__name__},
        )
        return RateLimitStatus(allowed=True, remaining=cap, reset_in=0)

    remaining = max(cap - used, 0)
    return RateLimitStatus(allowed=used < cap, remaining=remaining, reset_in=WINDOW_SECONDS if remaining == 0 else 0)


def note_request(account_id: str, path: Optional[str] = None, now: Optional[datetime] = None) -> None:
    """Log one admitted request. Best-effort like the check itself."""
    try:
        with get_db_session() as session:
            session.execute(
                insert(request_log).values(account_id=account_id, path=path, occurred_at=now or utcnow())
            )
    except Exception as exc:
        logger.warning(
            "[ratelimit] request log write failed",
            extra={"account_id": account_id, "error_code": type(exc).__name__},
        )


def enforce(account_id: str, path: Optional[str] = None, now: Optional[datetime] = None) -> RateLimitStatus:
    """Check the window, raise RateLimitedError when full, otherwise log the request."""
    status = check_rate(account_id, now=now)
    if not status.allowed:
        ratelimit_block_total.inc()
        logger.warning("[ratelimit] BLOCK", extra={"account_id": account_id, "path": path})
        raise RateLimitedError(
            f"Too many requests. Please wait {status.reset_in} seconds.",
            extra={"rateLimit": status.to_dict()},
            headers={"Retry-After": str(status.reset_in)},
        )
    note_request(account_id, path=path, now=now)
    return status
