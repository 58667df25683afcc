"""Tests for the API key and access token codec."""
import base64
import re
from datetime import datetime, timedelta, timezone

from ltgvault.features.credentials.codec import (
    hash_api_key,
    issue_access_token,
    issue_api_key,
    last_four,
    validate_access_token,
)
from ltgvault.models.credential import TokenFailure


NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)
SECRET = "unit-test-secret"


def _decode(token: str) -> str:
    return base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)).decode()


def _encode(raw: str) -> str:
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def test_api_key_format():
    key = issue_api_key()
    assert re.fullmatch(r"ltgv_[0-9a-f]{48}", key)
    assert issue_api_key() != key


def test_hash_is_deterministic_sha256_hex():
    key = issue_api_key()
    assert hash_api_key(key) == hash_api_key(key)
    assert re.fullmatch(r"[0-9a-f]{64}", hash_api_key(key))
    assert hash_api_key(key) != hash_api_key(issue_api_key())
    assert key not in hash_api_key(key)


def test_last_four():
    assert last_four("ltgv_abcdef1234") == "1234"


def test_token_round_trip():
    token = issue_access_token("acct-1", "a@example.com", timedelta(hours=24), now=NOW, secret=SECRET)
    result = validate_access_token(token, now=NOW + timedelta(hours=1), secret=SECRET)
    assert result.valid
    assert result.account_id == "acct-1"
    assert result.email == "a@example.com"
    assert result.reason is None


def test_token_is_url_safe_without_padding():
    token = issue_access_token("acct-1", "a+b@example.com", timedelta(hours=1), now=NOW, secret=SECRET)
    assert "=" not in token
    assert "+" not in token and "/" not in token


def test_tampered_signature_rejected():
    token = issue_access_token("acct-1", "a@example.com", timedelta(hours=1), now=NOW, secret=SECRET)
    account_id, email, expiry, signature = _decode(token).split(":")
    flipped = ("0" if signature[0] != "0" else "1") + signature[1:]
    forged = _encode(f"{account_id}:{email}:{expiry}:{flipped}")
    assert validate_access_token(forged, now=NOW, secret=SECRET).reason is TokenFailure.BAD_SIGNATURE


def test_tampered_payload_rejected():
    token = issue_access_token("acct-1", "a@example.com", timedelta(hours=1), now=NOW, secret=SECRET)
    _, email, expiry, signature = _decode(token).split(":")
    forged = _encode(f"acct-2:{email}:{expiry}:{signature}")
    result = validate_access_token(forged, now=NOW, secret=SECRET)
    assert not result.valid
    assert result.reason is TokenFailure.BAD_SIGNATURE


def test_wrong_secret_rejected():
    token = issue_access_token("acct-1", "a@example.com", timedelta(hours=1), now=NOW, secret=SECRET)
    assert validate_access_token(token, now=NOW, secret="other").reason is TokenFailure.BAD_SIGNATURE


def test_expiry_boundary_is_inclusive():
    ttl = timedelta(hours=24)
    token = issue_access_token("acct-1", "a@example.com", ttl, now=NOW, secret=SECRET)
    at_expiry = validate_access_token(token, now=NOW + ttl, secret=SECRET)
    after_expiry = validate_access_token(token, now=NOW + ttl + timedelta(milliseconds=1), secret=SECRET)
    assert at_expiry.valid
    assert not after_expiry.valid
    assert after_expiry.reason is TokenFailure.EXPIRED


def test_expiry_checked_before_signature():
    token = issue_access_token("acct-1", "a@example.com", timedelta(minutes=1), now=NOW, secret=SECRET)
    result = validate_access_token(token, now=NOW + timedelta(hours=1), secret="other")
    assert result.reason is TokenFailure.EXPIRED


def test_malformed_tokens():
    cases = [
        "",
        "%%%not-base64%%%",
        _encode("only:three:fields"),
        _encode("a:b:c:d:e"),
        _encode("acct:a@example.com:not-a-number:deadbeef"),
    ]
    for token in cases:
        result = validate_access_token(token, now=NOW, secret=SECRET)
        assert not result.valid
        assert result.reason is TokenFailure.MALFORMED, token
        assert result.message == "Invalid token format"


def test_default_ttl_and_secret_from_settings():
    token = issue_access_token("acct-1", "a@example.com", now=NOW)
    assert validate_access_token(token, now=NOW + timedelta(hours=23)).valid
    assert validate_access_token(token, now=NOW + timedelta(hours=25)).reason is TokenFailure.EXPIRED
