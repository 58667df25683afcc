"""
Metered request pipeline shared by every generation endpoint:

    rate limit -> entitlement -> work -> record usage

Authentication has already happened in the route dependency. Usage is recorded
only after the work succeeded, so a failed upstream call never consumes quota.
"""

from datetime import datetime
from typing import Awaitable, Callable, Optional

from ltgvault.features.ai.service import ToolResult
from ltgvault.features.entitlements import service as entitlements
from ltgvault.features.ratelimit import service as ratelimit
from ltgvault.features.usage import service as usage
from ltgvault.models.account import Account
from ltgvault.models.feature import Feature


async def run_metered(
    account: Account,
    feature: Feature,
    work: Callable[[], Awaitable[ToolResult]],
    *,
    path: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    rate = ratelimit.enforce(account.id, path=path, now=now)
    decision = entitlements.enforce(account, feature, now=now)

    outcome = await work()

    event = usage.record(account.id, feature, outcome.action, now=now, metadata=outcome.metadata or None)
    # A failed write leaves the ledger count unchanged
    used = decision.used + 1 if event is not None else decision.used
    return {
        "success": True,
        "result": outcome.result,
        "usage": {"used": used, "limit": decision.limit},
        "rateLimit": {"remaining": max(rate.remaining - 1, 0), "resetIn": rate.reset_in},
    }
