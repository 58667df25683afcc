"""Usage policies per feature and tier.

The table is immutable and checked for exhaustiveness at import time, so an
unconfigured feature can never fall through to an implicit allow.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from ltgvault.core.errors import UnknownFeatureError
from ltgvault.models.feature import Feature


class Tier(str, Enum):
    FREE = "free"
    PAID = "paid"


class Window(str, Enum):
    LIFETIME = "lifetime"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class UsagePolicy:
    limit: Optional[int]  # None = unlimited
    window: Window


@dataclass(frozen=True)
class FeaturePolicy:
    feature: Feature
    free: UsagePolicy
    paid: UsagePolicy

    def for_tier(self, tier: Tier) -> UsagePolicy:
        return self.paid if tier is Tier.PAID else self.free


class EntitlementPolicies:
    """Read-only mapping Feature -> FeaturePolicy covering every Feature."""

    def __init__(self, policies: Mapping[Feature, FeaturePolicy]):
        missing = set(Feature) - set(policies)
        if missing:
            names = ", ".join(sorted(feature.value for feature in missing))
            raise UnknownFeatureError(f"No usage policy configured for: {names}")
        self._policies = MappingProxyType(dict(policies))

    def get(self, feature: Feature) -> FeaturePolicy:
        return self._policies[feature]

    def __iter__(self):
        return iter(self._policies.values())


DEFAULT_POLICIES = EntitlementPolicies({
    Feature.POSTUP: FeaturePolicy(
        Feature.POSTUP,
        free=UsagePolicy(3, Window.LIFETIME),
        paid=UsagePolicy(None, Window.LIFETIME),
    ),
    Feature.THREADGEN: FeaturePolicy(
        Feature.THREADGEN,
        free=UsagePolicy(3, Window.LIFETIME),
        paid=UsagePolicy(None, Window.LIFETIME),
    ),
    Feature.CHAPTERGEN: FeaturePolicy(
        Feature.CHAPTERGEN,
        free=UsagePolicy(1, Window.LIFETIME),
        paid=UsagePolicy(None, Window.LIFETIME),
    ),
    Feature.RESUMEBUILDER: FeaturePolicy(
        Feature.RESUMEBUILDER,
        free=UsagePolicy(5, Window.LIFETIME),
        paid=UsagePolicy(100, Window.MONTHLY),
    ),
})


def parse_feature(name) -> Feature:
    """Map a feature name onto the closed Feature set.

    Raises:
        UnknownFeatureError: for any name outside the set
    """
    if isinstance(name, Feature):
        return name
    try:
        return Feature(str(name).strip().lower())
    except ValueError:
        raise UnknownFeatureError(f"Unknown feature: {name}") from None
