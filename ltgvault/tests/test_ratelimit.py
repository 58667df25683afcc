"""Tests for the per-minute request throttle."""
from datetime import datetime, timedelta, timezone

import pytest

from ltgvault.core.errors import RateLimitedError
from ltgvault.core.metrics import ratelimit_block_total
from ltgvault.features.ratelimit import service as ratelimit


NOW = datetime(2026, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def test_fresh_account_has_full_window(account):
    status = ratelimit.check_rate(account.id, now=NOW)
    assert status.allowed
    assert status.remaining == 10
    assert status.reset_in == 0


def test_tenth_request_allowed_eleventh_blocked(account):
    for index in range(10):
        status = ratelimit.enforce(account.id, now=NOW + timedelta(seconds=index))
        assert status.allowed
        assert status.remaining == 10 - index

    blocked = ratelimit.check_rate(account.id, now=NOW + timedelta(seconds=11))
    assert not blocked.allowed
    assert blocked.remaining == 0
    assert blocked.reset_in == 60


def test_enforce_raises_rate_limited(account):
    for _ in range(10):
        ratelimit.note_request(account.id, now=NOW)
    with pytest.raises(RateLimitedError) as exc_info:
        ratelimit.enforce(account.id, now=NOW + timedelta(seconds=5))
    err = exc_info.value
    assert err.status_code == 429
    assert err.code == "RATE_LIMITED"
    assert err.extra == {"rateLimit": {"remaining": 0, "resetIn": 60}}
    assert err.headers["Retry-After"] == "60"
    assert ratelimit_block_total.value() == 1


def test_blocked_requests_are_not_logged(account):
    for _ in range(10):
        ratelimit.note_request(account.id, now=NOW)
    for _ in range(3):
        with pytest.raises(RateLimitedError):
            ratelimit.enforce(account.id, now=NOW)
    assert ratelimit._count_recent(account.id, NOW) == 10


def test_window_slides(account):
    for _ in range(10):
        ratelimit.note_request(account.id, now=NOW)
    assert not ratelimit.check_rate(account.id, now=NOW + timedelta(seconds=30)).allowed
    assert ratelimit.check_rate(account.id, now=NOW + timedelta(seconds=61)).allowed


def test_limit_is_per_account(make_account):
    busy = make_account()
    quiet = make_account()
    for _ in range(10):
        ratelimit.note_request(busy.id, now=NOW)
    assert ratelimit.check_rate(quiet.id, now=NOW).allowed


def test_fails_open_when_store_errors(account, monkeypatch):
    def broken_count(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(ratelimit, "_count_recent", broken_count)
    status = ratelimit.check_rate(account.id, now=NOW)
    assert status.allowed
    assert status.remaining == 10


def test_configurable_limit(account, monkeypatch):
    monkeypatch.setattr(ratelimit.settings, "RATE_LIMIT_PER_MINUTE", 2)
    ratelimit.enforce(account.id, now=NOW)
    ratelimit.enforce(account.id, now=NOW)
    with pytest.raises(RateLimitedError):
        ratelimit.enforce(account.id, now=NOW)
