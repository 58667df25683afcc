"""
ltgvault/features/credentials/codec.py

API key and access token codec.

Handles:
- API key generation: ltgv_ + 24 random bytes hex (48 hex chars)
- One-way SHA-256 digest used as the lookup key in storage
- Magic-link access tokens: base64url("account_id:email:expiry_ms:hmac_hex")

Everything here is pure apart from the randomness of issue_api_key and the
wall clock when `now` is omitted.
"""

import base64
import binascii
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from ltgvault.core.config import settings, access_token_secret
from ltgvault.models.credential import AccessTokenResult, TokenFailure


KEY_RANDOM_BYTES = 24


def _normalize_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def _epoch_ms(moment: datetime) -> int:
    delta = moment - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return (delta.days * 86_400_000) + (delta.seconds * 1000) + (delta.microseconds // 1000)


def issue_api_key(prefix: Optional[str] = None) -> str:
    """Generate a new plaintext API key. Shown to the owner exactly once."""
    return f"{prefix or settings.API_KEY_PREFIX}{secrets.token_hex(KEY_RANDOM_BYTES)}"


def hash_api_key(secret: str) -> str:
    """SHA-256 hex digest of the key. Deterministic so it can be looked up by equality."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def last_four(secret: str) -> str:
    return secret[-4:]


def key_prefix(secret: str) -> str:
    return secret[: len(settings.API_KEY_PREFIX)]


def _sign(payload: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def _b64url_encode(raw: str) -> str:
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def _b64url_decode(token: str) -> str:
    padded = token + "=" * (-len(token) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")


def issue_access_token(
    account_id: str,
    email: str,
    ttl: Optional[timedelta] = None,
    now: Optional[datetime] = None,
    secret: Optional[str] = None,
) -> str:
    """
    Build a signed, time-limited access token for the magic-link flow.

    Args:
        account_id: Owning account
        email: Account email, re-checked on redemption
        ttl: Lifetime (defaults to ACCESS_TOKEN_TTL_HOURS)
        now: Fixed issue time for deterministic tests
        secret: HMAC secret override (defaults to the configured secret)

    Returns:
        base64url token without padding
    """
    if ttl is None:
        ttl = timedelta(hours=settings.ACCESS_TOKEN_TTL_HOURS)
    expiry_ms = _epoch_ms(_normalize_now(now) + ttl)
    payload = f"{account_id}:{email}:{expiry_ms}"
    signature = _sign(payload, secret or access_token_secret())
    return _b64url_encode(f"{payload}:{signature}")


def validate_access_token(
    token: str,
    now: Optional[datetime] = None,
    secret: Optional[str] = None,
) -> AccessTokenResult:
    """
    Validate an access token.

    Checks run in order: shape, expiry, signature. A token checked at exactly
    its expiry instant is still valid.
    """
    try:
        decoded = _b64url_decode(token or "")
    except (binascii.Error, UnicodeError, ValueError):
        return AccessTokenResult(valid=False, reason=TokenFailure.MALFORMED)

    parts = decoded.split(":")
    if len(parts) != 4:
        return AccessTokenResult(valid=False, reason=TokenFailure.MALFORMED)

    account_id, email, expiry_raw, signature = parts
    try:
        expiry_ms = int(expiry_raw)
    except ValueError:
        return AccessTokenResult(valid=False, reason=TokenFailure.MALFORMED)

    if _epoch_ms(_normalize_now(now)) > expiry_ms:
        return AccessTokenResult(valid=False, reason=TokenFailure.EXPIRED)

    expected = _sign(f"{account_id}:{email}:{expiry_raw}", secret or access_token_secret())
    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        return AccessTokenResult(valid=False, reason=TokenFailure.BAD_SIGNATURE)

    return AccessTokenResult(valid=True, account_id=account_id, email=email)
