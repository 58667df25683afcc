"""Request dependencies: API key and admin secret authentication."""

import hashlib
import hmac
import logging
from typing import Optional

from fastapi import Header

from ltgvault.core.config import settings
from ltgvault.core.errors import AuthenticationError, ServiceUnavailableError
from ltgvault.features.credentials import store as credential_store
from ltgvault.models.account import Account


logger = logging.getLogger("ltgvault")


def _authenticate(api_key: Optional[str]) -> Account:
    if not api_key or not api_key.strip():
        raise AuthenticationError("API key required", code="MISSING_API_KEY")

    account = credential_store.resolve(api_key)
    if account is None:
        logger.info("[auth] invalid api key", extra={"error_code": "INVALID_API_KEY"})
        raise AuthenticationError("Invalid API key")
    return account


def require_account(x_api_key: Optional[str] = Header(None)) -> Account:
    """Authenticated account whose billing status allows metered use."""
    account = _authenticate(x_api_key)
    if account.is_inactive:
        logger.info(
            "[auth] subscription inactive",
            extra={"account_id": account.id, "status": account.subscription_status.value},
        )
        raise AuthenticationError(
            "Your subscription is inactive. Update your payment method to continue.",
            code="SUBSCRIPTION_INACTIVE",
        )
    return account


def require_key_owner(x_api_key: Optional[str] = Header(None)) -> Account:
    """Authenticated account regardless of billing status (account and key pages)."""
    return _authenticate(x_api_key)


def require_admin(x_admin_secret: Optional[str] = Header(None)) -> str:
    """
    Admin secret check for plan-change endpoints.

    Returns a short, non-reversible actor id for logs.

    Raises:
        ServiceUnavailableError: when ADMIN_SECRET is not configured
        AuthenticationError: when the header is missing or wrong
    """
    expected = settings.ADMIN_SECRET
    if not expected:
        raise ServiceUnavailableError("Admin authentication not configured", code="ADMIN_AUTH_UNCONFIGURED")

    provided = (x_admin_secret or "").strip()
    if not provided or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("[auth] admin secret rejected", extra={"error_code": "ADMIN_UNAUTHORIZED"})
        raise AuthenticationError("Unauthorized", code="ADMIN_UNAUTHORIZED")
    return f"admin:{hashlib.sha256(provided.encode('utf-8')).hexdigest()[:16]}"
