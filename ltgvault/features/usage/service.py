"""
ltgvault/features/usage/service.py

Usage ledger.

Handles:
- Usage event recording (insert-only, log-and-continue on failure)
- Windowed counts derived from raw rows (lifetime, calendar month, trailing minute)
- Per-feature summary for the account page
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Dict, Optional, Any
from sqlalchemy import select, insert, func

from ltgvault.core.database import get_db_session, usage_events
from ltgvault.core.metrics import usage_record_failures_total
from ltgvault.models.feature import Feature
from ltgvault.models.usage_event import UsageEvent


logger = logging.getLogger("ltgvault")


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def month_start(now: Optional[datetime] = None) -> datetime:
    """First instant of the UTC calendar month containing `now`."""
    current = _normalize_now(now)
    return current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def record(
    account_id: str,
    feature: Feature,
    action: str,
    now: Optional[datetime] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[UsageEvent]:
    """
    Append one usage event.

    Called only after the metered work succeeded. A store failure is logged
    and swallowed: the user already received the work.

    Returns:
        The recorded UsageEvent, or None when recording failed
    """
    occurred_at = _normalize_now(now)
    feature = Feature(feature)
    try:
        with get_db_session() as session:
            session.execute(
                insert(usage_events).values(
                    account_id=account_id,
                    feature=feature.value,
                    action=action,
                    occurred_at=occurred_at,
                    metadata=metadata,
                )
            )
    except Exception as exc:
        usage_record_failures_total.inc({"feature": feature.value})
        logger.error(
            "[usage] record failed",
            extra={"account_id": account_id, "feature": feature.value, "error_code": type(exc).__name__},
        )
        return None

    return UsageEvent(
        account_id=account_id,
        feature=feature,
        action=action,
        occurred_at=occurred_at,
        metadata=metadata,
    )


def _count(account_id: str, feature: Optional[Feature] = None, since: Optional[datetime] = None) -> int:
    query = select(func.count()).select_from(usage_events).where(usage_events.c.account_id == account_id)
    if feature is not None:
        query = query.where(usage_events.c.feature == Feature(feature).value)
    if since is not None:
        query = query.where(usage_events.c.occurred_at >= since)
    with get_db_session() as session:
        return int(session.execute(query).scalar() or 0)


def count_lifetime(account_id: str, feature: Feature) -> int:
    return _count(account_id, feature)


def count_in_current_month(account_id: str, feature: Feature, now: Optional[datetime] = None) -> int:
    """Events since the first instant of the current UTC month."""
    return _count(account_id, feature, since=month_start(now))


def count_in_last_minute(account_id: str, now: Optional[datetime] = None) -> int:
    """Events of any feature in the trailing 60 seconds."""
    return _count(account_id, since=_normalize_now(now) - timedelta(seconds=60))


def usage_summary(account_id: str, now: Optional[datetime] = None) -> Dict[Feature, Dict[str, int]]:
    """Lifetime and current-month counts per feature."""
    start = month_start(now)
    with get_db_session() as session:
        lifetime_rows = session.execute(
            select(usage_events.c.feature, func.count())
            .where(usage_events.c.account_id == account_id)
            .group_by(usage_events.c.feature)
        ).all()
        monthly_rows = session.execute(
            select(usage_events.c.feature, func.count())
            .where(usage_events.c.account_id == account_id)
            .where(usage_events.c.occurred_at >= start)
            .group_by(usage_events.c.feature)
        ).all()

    lifetime = {name: int(count) for name, count in lifetime_rows}
    monthly = {name: int(count) for name, count in monthly_rows}
    return {
        feature: {"lifetime": lifetime.get(feature.value, 0), "monthly": monthly.get(feature.value, 0)}
        for feature in Feature
    }
