"""Stripe webhook: signature check, state mapping and idempotency."""
import hashlib
import hmac
import json
import time

import pytest

from ltgvault.features.accounts.service import get_account, get_account_by_email
from ltgvault.features.billing import service as billing_service
from ltgvault.features.billing.service import map_stripe_status, price_table
from ltgvault.features.credentials import store as credential_store
from ltgvault.models.account import BillingStatus
from ltgvault.models.feature import Feature


WEBHOOK_SECRET = "whsec_test_secret"


def _signed(event: dict, secret: str = WEBHOOK_SECRET):
    payload = json.dumps(event)
    timestamp = int(time.time())
    signature = hmac.new(secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return payload, {"stripe-signature": f"t={timestamp},v1={signature}", "content-type": "application/json"}


def _send(client, event, secret=WEBHOOK_SECRET):
    payload, headers = _signed(event, secret)
    return client.post("/api/billing/webhook", content=payload, headers=headers)


def _event(event_id, event_type, obj):
    return {"id": event_id, "type": event_type, "data": {"object": obj}}


def _checkout(event_id="evt_checkout_1", email="buyer@example.com", tool="postup"):
    return _event(
        event_id,
        "checkout.session.completed",
        {"customer": "cus_123", "customer_email": email, "metadata": {"tool": tool}, "subscription": "sub_1"},
    )


def test_bad_signature_rejected(client):
    resp = _send(client, _checkout(), secret="whsec_wrong")
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_WEBHOOK"
    assert get_account_by_email("buyer@example.com") is None


def test_missing_signature_rejected(client):
    resp = client.post("/api/billing/webhook", content=json.dumps(_checkout()))
    assert resp.status_code == 400


def test_checkout_creates_account_with_key(client):
    resp = _send(client, _checkout())
    assert resp.status_code == 200
    body = resp.json()
    assert body["duplicate"] is False

    account = get_account_by_email("buyer@example.com")
    assert body["accountId"] == account.id
    assert account.is_subscribed(Feature.POSTUP)
    assert account.stripe_customer_id == "cus_123"
    assert credential_store.active_credential(account.id) is not None


def test_checkout_existing_account_keeps_key(client, make_account):
    account = make_account(email="buyer@example.com")
    key = credential_store.issue(account.id)
    _send(client, _checkout(tool="chaptergen"))
    refreshed = get_account(account.id)
    assert refreshed.is_subscribed(Feature.CHAPTERGEN)
    assert credential_store.resolve(key).id == account.id


def test_duplicate_event_is_ignored(client):
    _send(client, _checkout())
    again = _send(client, _checkout())
    assert again.status_code == 200
    assert again.json()["duplicate"] is True
    account = get_account_by_email("buyer@example.com")
    assert len(credential_store.list_active(account.id)) == 1


def test_subscription_updated_follows_status(client):
    _send(client, _checkout())
    update = _event(
        "evt_update_1",
        "customer.subscription.updated",
        {"customer": "cus_123", "status": "past_due", "metadata": {"tool": "postup"}},
    )
    assert _send(client, update).status_code == 200
    account = get_account_by_email("buyer@example.com")
    assert account.subscription_status is BillingStatus.ACTIVE
    assert account.is_subscribed(Feature.POSTUP) is False


def test_canceling_one_tool_keeps_other_tools_working(client):
    _send(client, _checkout(event_id="evt_checkout_postup", tool="postup"))
    _send(client, _checkout(event_id="evt_checkout_chapters", tool="chaptergen"))
    canceled = _event(
        "evt_update_cancel",
        "customer.subscription.updated",
        {"customer": "cus_123", "status": "canceled", "metadata": {"tool": "postup"}},
    )
    assert _send(client, canceled).status_code == 200

    account = get_account_by_email("buyer@example.com")
    assert account.subscription_status is BillingStatus.ACTIVE
    assert account.is_subscribed(Feature.POSTUP) is False
    assert account.is_subscribed(Feature.CHAPTERGEN) is True

    key = credential_store.issue(account.id)
    resp = client.post(
        "/api/tools/chaptergen", json={"content": "[0:00] hi [4:00] bye"}, headers={"x-api-key": key}
    )
    assert resp.status_code == 200
    assert resp.json()["usage"]["limit"] is None

    postup = client.post("/api/tools/postup", json={"content": "notes"}, headers={"x-api-key": key})
    assert postup.status_code == 200
    assert postup.json()["usage"]["limit"] == 3


def test_subscription_deleted_uses_price_table(client, monkeypatch):
    _send(client, _checkout(tool="threadgen"))
    monkeypatch.setattr(billing_service, "price_table", lambda: {"price_thread": Feature.THREADGEN})
    deleted = _event(
        "evt_delete_1",
        "customer.subscription.deleted",
        {"customer": "cus_123", "items": {"data": [{"price": {"id": "price_thread"}}]}},
    )
    assert _send(client, deleted).status_code == 200
    assert get_account_by_email("buyer@example.com").is_subscribed(Feature.THREADGEN) is False


def test_payment_failed_blocks_metered_use(client):
    _send(client, _checkout())
    account = get_account_by_email("buyer@example.com")
    key = credential_store.issue(account.id)

    _send(client, _event("evt_invoice_1", "invoice.payment_failed", {"customer": "cus_123"}))

    resp = client.post("/api/tools/postup", json={"content": "notes"}, headers={"x-api-key": key})
    assert resp.status_code == 401
    assert resp.json()["error"] == "SUBSCRIPTION_INACTIVE"
    assert client.get("/api/keys", headers={"x-api-key": key}).status_code == 200


def test_unknown_event_type_acknowledged(client):
    resp = _send(client, _event("evt_other_1", "customer.created", {"id": "cus_999"}))
    assert resp.status_code == 200
    assert resp.json()["accountId"] is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("active", BillingStatus.ACTIVE),
        ("trialing", BillingStatus.ACTIVE),
        ("past_due", BillingStatus.PAST_DUE),
        ("unpaid", BillingStatus.CANCELED),
        ("canceled", BillingStatus.CANCELED),
        ("incomplete", BillingStatus.PENDING),
        (None, BillingStatus.PENDING),
    ],
)
def test_map_stripe_status(raw, expected):
    assert map_stripe_status(raw) is expected


def test_price_table_skips_unset_prices():
    class Cfg:
        STRIPE_PRICE_POSTUP = "price_a"
        STRIPE_PRICE_THREADGEN = None
        STRIPE_PRICE_CHAPTERGEN = " "
        STRIPE_PRICE_RESUMEBUILDER = "price_d"

    assert dict(price_table(Cfg())) == {"price_a": Feature.POSTUP, "price_d": Feature.RESUMEBUILDER}
