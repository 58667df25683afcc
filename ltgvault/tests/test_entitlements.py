"""Tests for entitlement policies and quota decisions."""
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from ltgvault.core.errors import QuotaExceededError, UnknownFeatureError
from ltgvault.core.metrics import entitlement_denied_total
from ltgvault.features.entitlements import service as entitlements
from ltgvault.features.entitlements.policy import (
    DEFAULT_POLICIES,
    EntitlementPolicies,
    FeaturePolicy,
    Tier,
    UsagePolicy,
    Window,
    parse_feature,
)
from ltgvault.features.usage.service import record
from ltgvault.models.feature import Feature, SUBSCRIPTION_COLUMNS, check_subscription_columns


NOW = datetime(2026, 6, 15, 12, 0, 0, tzinfo=timezone.utc)
LAST_MONTH = datetime(2026, 5, 20, 8, 0, 0, tzinfo=timezone.utc)


def _use(account, feature, times, now=NOW):
    for _ in range(times):
        record(account.id, feature, "generate", now=now)


def test_policy_table_matches_product_limits():
    expected = {
        Feature.POSTUP: ((3, Window.LIFETIME), (None, Window.LIFETIME)),
        Feature.THREADGEN: ((3, Window.LIFETIME), (None, Window.LIFETIME)),
        Feature.CHAPTERGEN: ((1, Window.LIFETIME), (None, Window.LIFETIME)),
        Feature.RESUMEBUILDER: ((5, Window.LIFETIME), (100, Window.MONTHLY)),
    }
    for feature, (free, paid) in expected.items():
        policy = DEFAULT_POLICIES.get(feature)
        assert (policy.free.limit, policy.free.window) == free
        assert (policy.paid.limit, policy.paid.window) == paid


def test_policy_table_must_cover_every_feature():
    partial = {
        Feature.POSTUP: FeaturePolicy(Feature.POSTUP, UsagePolicy(3, Window.LIFETIME), UsagePolicy(None, Window.LIFETIME)),
    }
    with pytest.raises(UnknownFeatureError):
        EntitlementPolicies(partial)


def test_subscription_columns_must_cover_every_feature():
    check_subscription_columns(SUBSCRIPTION_COLUMNS)
    partial = {Feature.POSTUP: "subscribed_postup"}
    with pytest.raises(UnknownFeatureError, match="threadgen"):
        check_subscription_columns(partial)


def test_parse_feature():
    assert parse_feature("postup") is Feature.POSTUP
    assert parse_feature(" ThreadGen ") is Feature.THREADGEN
    assert parse_feature(Feature.CHAPTERGEN) is Feature.CHAPTERGEN
    with pytest.raises(UnknownFeatureError):
        parse_feature("videogen")


def test_unknown_feature_is_not_allowed(account):
    with pytest.raises(UnknownFeatureError):
        entitlements.evaluate(account, "videogen", now=NOW)


def test_free_limit_three(account):
    """Free postup: 3 allowed, the 4th is denied with an upgrade prompt."""
    for used in range(3):
        decision = entitlements.evaluate(account, Feature.POSTUP, now=NOW)
        assert decision.allowed
        assert decision.used == used
        _use(account, Feature.POSTUP, 1)

    denied = entitlements.evaluate(account, Feature.POSTUP, now=NOW)
    assert not denied.allowed
    assert denied.used == 3
    assert denied.limit == 3
    assert denied.tier is Tier.FREE
    assert "Upgrade" in denied.message


def test_chaptergen_free_limit_is_one(account):
    _use(account, Feature.CHAPTERGEN, 1)
    assert not entitlements.evaluate(account, Feature.CHAPTERGEN, now=NOW).allowed


def test_paid_unlimited(make_account):
    account = make_account(subscribed=[Feature.POSTUP])
    _use(account, Feature.POSTUP, 25)
    decision = entitlements.evaluate(account, Feature.POSTUP, now=NOW)
    assert decision.allowed
    assert decision.limit is None
    assert decision.remaining is None
    assert decision.tier is Tier.PAID


def test_paid_monthly_window_excludes_last_month(make_account):
    """Paid resume builder with 99 this month and 5 last month is allowed once more."""
    account = make_account(subscribed=[Feature.RESUMEBUILDER])
    _use(account, Feature.RESUMEBUILDER, 5, now=LAST_MONTH)
    _use(account, Feature.RESUMEBUILDER, 99)

    decision = entitlements.evaluate(account, Feature.RESUMEBUILDER, now=NOW)
    assert decision.allowed
    assert decision.used == 99
    assert decision.limit == 100
    assert decision.window is Window.MONTHLY

    _use(account, Feature.RESUMEBUILDER, 1)
    denied = entitlements.evaluate(account, Feature.RESUMEBUILDER, now=NOW)
    assert not denied.allowed
    assert "resets" in denied.message


def test_free_resume_builder_window_is_lifetime(account):
    _use(account, Feature.RESUMEBUILDER, 3, now=LAST_MONTH)
    _use(account, Feature.RESUMEBUILDER, 2)
    assert not entitlements.evaluate(account, Feature.RESUMEBUILDER, now=NOW).allowed


def test_subscription_is_per_feature(make_account):
    account = make_account(subscribed=[Feature.THREADGEN])
    _use(account, Feature.POSTUP, 3)
    _use(account, Feature.THREADGEN, 3)
    assert not entitlements.evaluate(account, Feature.POSTUP, now=NOW).allowed
    assert entitlements.evaluate(account, Feature.THREADGEN, now=NOW).allowed


def test_quota_is_monotonic(account):
    """Once denied, more usage never flips the decision back within the window."""
    _use(account, Feature.THREADGEN, 3)
    assert not entitlements.evaluate(account, Feature.THREADGEN, now=NOW).allowed
    _use(account, Feature.THREADGEN, 2)
    assert not entitlements.evaluate(account, Feature.THREADGEN, now=NOW).allowed


def test_denial_is_idempotent(account):
    _use(account, Feature.POSTUP, 3)
    first = entitlements.evaluate(account, Feature.POSTUP, now=NOW)
    second = entitlements.evaluate(account, Feature.POSTUP, now=NOW)
    assert first == second
    with pytest.raises(QuotaExceededError):
        entitlements.enforce(account, Feature.POSTUP, now=NOW)
    with pytest.raises(QuotaExceededError):
        entitlements.enforce(account, Feature.POSTUP, now=NOW)
    assert entitlements.evaluate(account, Feature.POSTUP, now=NOW).used == 3


def test_enforce_error_details_free(account):
    _use(account, Feature.POSTUP, 3)
    with pytest.raises(QuotaExceededError) as exc_info:
        entitlements.enforce(account, Feature.POSTUP, now=NOW)
    err = exc_info.value
    assert err.status_code == 429
    assert err.code == "LIMIT_EXCEEDED"
    assert err.extra["usage"] == {"used": 3, "limit": 3}
    assert err.extra["upgradeUrl"].endswith("/postup#pricing")
    assert entitlement_denied_total.value({"feature": "postup", "tier": "free"}) == 1


def test_enforce_error_details_paid_has_no_upgrade_url(make_account):
    account = make_account(subscribed=[Feature.RESUMEBUILDER])
    _use(account, Feature.RESUMEBUILDER, 100)
    with pytest.raises(QuotaExceededError) as exc_info:
        entitlements.enforce(account, Feature.RESUMEBUILDER, now=NOW)
    assert "upgradeUrl" not in exc_info.value.extra


def test_ledger_errors_are_not_swallowed(account, monkeypatch):
    def broken_count(*args, **kwargs):
        raise OperationalError("SELECT count(*)", {}, Exception("database unavailable"))

    monkeypatch.setattr(entitlements, "count_lifetime", broken_count)
    with pytest.raises(OperationalError):
        entitlements.evaluate(account, Feature.POSTUP, now=NOW)


def test_injected_policies(account):
    strict = EntitlementPolicies({
        feature: FeaturePolicy(feature, UsagePolicy(0, Window.LIFETIME), UsagePolicy(0, Window.LIFETIME))
        for feature in Feature
    })
    assert not entitlements.evaluate(account, Feature.POSTUP, now=NOW, policies=strict).allowed
