"""End-to-end tests for the metered tool endpoints."""
from ltgvault.core.errors import UpstreamError, UpstreamTimeoutError
from ltgvault.core.metrics import usage_record_failures_total
from ltgvault.features.credentials import store as credential_store
from ltgvault.features.ratelimit.service import note_request
from ltgvault.features.usage import service as usage_service
from ltgvault.features.usage.service import count_lifetime
from ltgvault.models.account import BillingStatus
from ltgvault.models.feature import Feature


def _post(client, tool, key, **body):
    body.setdefault("content", "Notes about shipping small and often.")
    headers = {"x-api-key": key} if key is not None else {}
    return client.post(f"/api/tools/{tool}", json=body, headers=headers)


def test_missing_api_key(client):
    resp = _post(client, "postup", None)
    assert resp.status_code == 401
    body = resp.json()
    assert body["error"] == "MISSING_API_KEY"
    assert body["request_id"] == resp.headers["x-request-id"]


def test_invalid_api_key(client):
    resp = _post(client, "postup", "ltgv_" + "0" * 48)
    assert resp.status_code == 401
    assert resp.json()["error"] == "INVALID_API_KEY"


def test_revoked_key_looks_like_unknown_key(client, account):
    old = credential_store.issue(account.id)
    credential_store.issue(account.id)
    revoked = _post(client, "postup", old)
    unknown = _post(client, "postup", "ltgv_" + "f" * 48)
    assert revoked.status_code == unknown.status_code == 401
    assert revoked.json()["message"] == unknown.json()["message"]


def test_inactive_subscription_rejected(client, make_account):
    account = make_account(status=BillingStatus.PAST_DUE)
    key = credential_store.issue(account.id)
    resp = _post(client, "postup", key)
    assert resp.status_code == 401
    assert resp.json()["error"] == "SUBSCRIPTION_INACTIVE"


def test_postup_success_records_usage(client, account, api_key, fake_llm):
    resp = _post(client, "postup", api_key, tone="casual")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert "—" not in body["result"]["post"]
    assert body["usage"] == {"used": 1, "limit": 3}
    assert body["rateLimit"]["remaining"] == 9
    assert count_lifetime(account.id, Feature.POSTUP) == 1
    assert fake_llm.calls[0]["feature"] == "postup"


def test_free_limit_then_limit_exceeded(client, account, api_key):
    for used in range(1, 4):
        resp = _post(client, "postup", api_key)
        assert resp.status_code == 200
        assert resp.json()["usage"]["used"] == used

    resp = _post(client, "postup", api_key)
    assert resp.status_code == 429
    body = resp.json()
    assert body["error"] == "LIMIT_EXCEEDED"
    assert body["usage"] == {"used": 3, "limit": 3}
    assert body["upgradeUrl"].endswith("/postup#pricing")
    assert count_lifetime(account.id, Feature.POSTUP) == 3


def test_denied_request_does_not_call_llm(client, account, api_key, fake_llm):
    _post(client, "chaptergen", api_key, content="[0:00] intro [5:00] outro")
    calls_before = len(fake_llm.calls)
    resp = _post(client, "chaptergen", api_key, content="[0:00] intro [5:00] outro")
    assert resp.status_code == 429
    assert len(fake_llm.calls) == calls_before


def test_paid_account_is_unlimited(client, make_account):
    account = make_account(subscribed=[Feature.THREADGEN])
    key = credential_store.issue(account.id)
    for _ in range(5):
        resp = _post(client, "threadgen", key, hook="Hooks decide everything.")
        assert resp.status_code == 200
    body = resp.json()
    assert body["usage"] == {"used": 5, "limit": None}
    assert body["result"]["body"][0].startswith("1/3 ")


def test_failed_usage_write_is_not_reported_as_used(client, account, api_key, monkeypatch):
    def broken_insert(*args, **kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(usage_service, "insert", broken_insert)
    resp = _post(client, "postup", api_key)
    assert resp.status_code == 200
    assert resp.json()["usage"] == {"used": 0, "limit": 3}
    assert usage_record_failures_total.value({"feature": "postup"}) == 1
    assert count_lifetime(account.id, Feature.POSTUP) == 0


def test_upstream_failure_consumes_no_quota(client, account, api_key, fake_llm):
    fake_llm.error = UpstreamError("Failed to generate content. Please try again.")
    resp = _post(client, "postup", api_key)
    assert resp.status_code == 502
    assert resp.json()["error"] == "UPSTREAM_ERROR"
    assert count_lifetime(account.id, Feature.POSTUP) == 0


def test_upstream_timeout_is_retryable_504(client, account, api_key, fake_llm):
    fake_llm.error = UpstreamTimeoutError("The AI service took too long to respond. Please try again.")
    resp = _post(client, "threadgen", api_key)
    assert resp.status_code == 504
    assert resp.json()["error"] == "UPSTREAM_TIMEOUT"
    assert count_lifetime(account.id, Feature.THREADGEN) == 0


def test_rate_limited_is_distinct_from_quota(client, make_account):
    account = make_account(subscribed=[Feature.POSTUP])
    key = credential_store.issue(account.id)
    for _ in range(10):
        note_request(account.id)
    resp = _post(client, "postup", key)
    assert resp.status_code == 429
    body = resp.json()
    assert body["error"] == "RATE_LIMITED"
    assert body["rateLimit"] == {"remaining": 0, "resetIn": 60}
    assert resp.headers["retry-after"] == "60"


def test_unknown_tool(client, api_key):
    resp = _post(client, "videogen", api_key)
    assert resp.status_code == 404
    assert resp.json()["error"] == "NOT_FOUND"


def test_content_validation(client, account, api_key):
    empty = _post(client, "postup", api_key, content="   ")
    too_long = _post(client, "postup", api_key, content="x" * 10001)
    assert empty.status_code == 400
    assert too_long.status_code == 400
    assert too_long.json()["error"] == "VALIDATION_ERROR"
    assert count_lifetime(account.id, Feature.POSTUP) == 0


def test_chaptergen_markers(client, api_key):
    resp = _post(client, "chaptergen", api_key, content="[0:00] welcome [10:05] thanks")
    assert resp.status_code == 200
    assert resp.json()["result"]["chapters"][0] == "00:00 Intro"


def test_usage_endpoint(client, account, api_key):
    _post(client, "postup", api_key)
    resp = client.get("/api/usage", headers={"x-api-key": api_key})
    assert resp.status_code == 200
    usage = resp.json()["usage"]
    assert usage["postup"]["used"] == 1
    assert usage["postup"]["limit"] == 3
    assert usage["postup"]["remaining"] == 2
    assert usage["chaptergen"]["limit"] == 1
    assert usage["resumebuilder"]["window"] == "lifetime"
    assert set(usage) == {"postup", "threadgen", "chaptergen", "resumebuilder"}


def test_request_id_is_propagated(client, api_key):
    resp = client.get("/api/usage", headers={"x-api-key": api_key, "x-request-id": "rid-123"})
    assert resp.headers["x-request-id"] == "rid-123"


def test_threadgen_hooks_then_body(client, account, api_key):
    hooks = _post(client, "threadgen", api_key, action="hooks")
    assert hooks.status_code == 200
    chosen = hooks.json()["result"]["hooks"][0]

    body = _post(client, "threadgen", api_key, action="body", hook=chosen)
    assert body.status_code == 200
    assert body.json()["result"]["hook"] == chosen
    assert body.json()["result"]["body"][0].startswith("1/3 ")
    assert count_lifetime(account.id, Feature.THREADGEN) == 2


def test_threadgen_invalid_action_is_rejected_before_metering(client, account, api_key, fake_llm):
    unknown = _post(client, "threadgen", api_key, action="more_viral")
    missing_hook = _post(client, "threadgen", api_key, action="body")
    assert unknown.status_code == missing_hook.status_code == 400
    assert unknown.json()["error"] == "VALIDATION_ERROR"
    assert fake_llm.calls == []
    assert count_lifetime(account.id, Feature.THREADGEN) == 0

    usage = client.get("/api/usage", headers={"x-api-key": api_key}).json()["usage"]
    assert usage["threadgen"]["remaining"] == 3


def test_postup_invalid_refine_action_is_rejected_before_metering(client, account, api_key, fake_llm):
    resp = _post(client, "postup", api_key, action="rhyme", currentPost="A post")
    assert resp.status_code == 400
    assert fake_llm.calls == []
    assert count_lifetime(account.id, Feature.POSTUP) == 0
