"""Account lookup and the magic-link flow (send link, activate access)."""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from ltgvault.api.keys import EmailRequest, normalized_email, subscriptions_payload
from ltgvault.core.errors import NotFoundError, ServiceUnavailableError, ValidationError
from ltgvault.features.accounts import service as accounts_service
from ltgvault.features.credentials import store as credential_store
from ltgvault.features.credentials.codec import issue_access_token, validate_access_token
from ltgvault.features.email.service import email_configured, send_access_link


logger = logging.getLogger("ltgvault")

router = APIRouter(prefix="/api", tags=["account"])


class ActivateRequest(BaseModel):
    token: str


@router.post("/account/lookup")
def lookup(body: EmailRequest):
    """Account summary by email. Never returns key material."""
    account = accounts_service.get_account_by_email(normalized_email(body.email))
    if account is None:
        raise NotFoundError("No account found for this email")
    credential = credential_store.active_credential(account.id)
    return {
        "found": True,
        "subscriptions": subscriptions_payload(account),
        "subscriptionStatus": account.subscription_status.value,
        "hasKey": credential is not None,
    }


@router.post("/account/send-link")
async def send_link(body: EmailRequest):
    if not email_configured():
        raise ServiceUnavailableError("Email is not configured", code="EMAIL_NOT_CONFIGURED")
    account = accounts_service.get_account_by_email(normalized_email(body.email))
    if account is None:
        raise NotFoundError("No account found for this email")

    token = issue_access_token(account.id, account.email)
    await send_access_link(account.email, token)
    logger.info("[account] access link issued", extra={"account_id": account.id})
    return {"sent": True}


@router.post("/activate-access")
def activate_access(body: ActivateRequest):
    """Exchange a valid access token for a fresh API key."""
    result = validate_access_token(body.token)
    if not result.valid:
        raise ValidationError(result.message, code=result.reason.value)

    account = accounts_service.get_account(result.account_id)
    if account is None:
        raise NotFoundError("Account not found")
    if account.email != result.email:
        raise ValidationError("Token does not match this account", code="EMAIL_MISMATCH")

    secret = credential_store.issue(account.id)
    logger.info("[account] access activated", extra={"account_id": account.id})
    return {
        "apiKey": secret,
        "email": account.email,
        "subscriptions": subscriptions_payload(account),
    }
