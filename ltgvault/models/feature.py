"""
ltgvault/models/feature.py

Closed set of metered products.
"""

from enum import Enum
from typing import Mapping

from ltgvault.core.errors import UnknownFeatureError


class Feature(str, Enum):
    POSTUP = "postup"
    THREADGEN = "threadgen"
    CHAPTERGEN = "chaptergen"
    RESUMEBUILDER = "resumebuilder"


# Tools served by /api/tools/{tool}; resumebuilder has its own routes
TOOL_FEATURES = (Feature.POSTUP, Feature.THREADGEN, Feature.CHAPTERGEN)

# Subscription flag column on the accounts table, one per feature
SUBSCRIPTION_COLUMNS = {
    Feature.POSTUP: "subscribed_postup",
    Feature.THREADGEN: "subscribed_threadgen",
    Feature.CHAPTERGEN: "subscribed_chaptergen",
    Feature.RESUMEBUILDER: "subscribed_resumebuilder",
}


def check_subscription_columns(columns: Mapping[Feature, str]) -> None:
    """Raise UnknownFeatureError unless every feature has a subscription column."""
    missing = set(Feature) - set(columns)
    if missing:
        names = ", ".join(sorted(feature.value for feature in missing))
        raise UnknownFeatureError(f"No subscription column configured for: {names}")


check_subscription_columns(SUBSCRIPTION_COLUMNS)
