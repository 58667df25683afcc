"""
ltgvault/features/entitlements/service.py

Entitlement evaluation + enforcement.

Handles:
- Tier resolution from the account's per-feature subscription flag
- Quota decision against the feature's policy and window
- Enforcement raising QuotaExceededError with usage details
- Structured logs and a denial counter

Ledger errors propagate: a failed count never defaults to allow.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging

from ltgvault.core.config import settings
from ltgvault.core.errors import QuotaExceededError
from ltgvault.core.metrics import entitlement_denied_total
from ltgvault.features.entitlements.policy import (
    DEFAULT_POLICIES,
    EntitlementPolicies,
    Tier,
    Window,
    parse_feature,
)
from ltgvault.features.usage.service import count_lifetime, count_in_current_month
from ltgvault.models.account import Account
from ltgvault.models.feature import Feature


logger = logging.getLogger("ltgvault")

FEATURE_LABELS = {
    Feature.POSTUP: "PostUp",
    Feature.THREADGEN: "ThreadGen",
    Feature.CHAPTERGEN: "ChapterGen",
    Feature.RESUMEBUILDER: "Resume Builder",
}


@dataclass(frozen=True)
class EntitlementDecision:
    feature: Feature
    allowed: bool
    used: int
    limit: Optional[int]
    tier: Tier
    window: Window
    message: Optional[str] = None

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(self.limit - self.used, 0)

    def to_usage(self) -> dict:
        return {"used": self.used, "limit": self.limit}


def tier_for(account: Account, feature: Feature) -> Tier:
    return Tier.PAID if account.is_subscribed(feature) else Tier.FREE


def upgrade_url(feature: Feature) -> str:
    return f"{settings.SITE_URL.rstrip('/')}/{feature.value}#pricing"


def _denial_message(feature: Feature, tier: Tier, limit: int) -> str:
    label = FEATURE_LABELS[feature]
    if tier is Tier.FREE:
        return f"You've used all {limit} free {label} generations. Upgrade to Pro for more."
    return f"You've reached your {limit} {label} generations for this month. Your limit resets next month."


def _count_used(account_id: str, feature: Feature, window: Window, now: Optional[datetime]) -> int:
    if window is Window.MONTHLY:
        return count_in_current_month(account_id, feature, now=now)
    return count_lifetime(account_id, feature)


def evaluate(
    account: Account,
    feature,
    now: Optional[datetime] = None,
    policies: EntitlementPolicies = DEFAULT_POLICIES,
) -> EntitlementDecision:
    """
    Decide whether the account may perform one more action of `feature`.

    Args:
        account: Authenticated account
        feature: Feature or feature name (unknown names raise UnknownFeatureError)
        now: Fixed timestamp for deterministic month boundaries
        policies: Policy table (defaults to the built-in table)

    Returns:
        EntitlementDecision; allowed iff limit is None or used < limit
    """
    feature = parse_feature(feature)
    tier = tier_for(account, feature)
    policy = policies.get(feature).for_tier(tier)

    used = _count_used(account.id, feature, policy.window, now)
    if policy.limit is None or used < policy.limit:
        return EntitlementDecision(
            feature=feature, allowed=True, used=used, limit=policy.limit, tier=tier, window=policy.window
        )

    return EntitlementDecision(
        feature=feature,
        allowed=False,
        used=used,
        limit=policy.limit,
        tier=tier,
        window=policy.window,
        message=_denial_message(feature, tier, policy.limit),
    )


def enforce(
    account: Account,
    feature,
    now: Optional[datetime] = None,
    policies: EntitlementPolicies = DEFAULT_POLICIES,
) -> EntitlementDecision:
    """Evaluate and raise QuotaExceededError on denial."""
    decision = evaluate(account, feature, now=now, policies=policies)
    if decision.allowed:
        return decision

    entitlement_denied_total.inc({"feature": decision.feature.value, "tier": decision.tier.value})
    logger.warning(
        "[entitlement] DENY",
        extra={
            "account_id": account.id,
            "feature": decision.feature.value,
            "tier": decision.tier.value,
            "used": decision.used,
            "limit": decision.limit,
        },
    )
    extra = {"usage": decision.to_usage()}
    if decision.tier is Tier.FREE:
        extra["upgradeUrl"] = upgrade_url(decision.feature)
    raise QuotaExceededError(decision.message, extra=extra)
