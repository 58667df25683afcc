"""Signup and API key management."""

import re

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ltgvault.api.deps import require_key_owner
from ltgvault.core.errors import ValidationError
from ltgvault.features.accounts import service as accounts_service
from ltgvault.features.credentials import store as credential_store
from ltgvault.models.account import Account


router = APIRouter(prefix="/api", tags=["keys"])

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EmailRequest(BaseModel):
    email: str


def normalized_email(raw: str) -> str:
    email = Account.normalize_email(raw or "")
    if not _EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    return email


def subscriptions_payload(account: Account) -> dict:
    return {feature.value: enabled for feature, enabled in account.subscriptions.items()}


@router.post("/signup", status_code=201)
def signup(body: EmailRequest):
    """Create a free account and return its first API key (shown once)."""
    account = accounts_service.create_account(normalized_email(body.email))
    secret = credential_store.issue(account.id)
    return {
        "accountId": account.id,
        "email": account.email,
        "apiKey": secret,
        "subscriptions": subscriptions_payload(account),
    }


@router.get("/keys")
def get_keys(account: Account = Depends(require_key_owner)):
    credential = credential_store.active_credential(account.id)
    return {
        "email": account.email,
        "key": credential.to_public() if credential else None,
        "subscriptions": subscriptions_payload(account),
        "subscriptionStatus": account.subscription_status.value,
    }


@router.post("/keys")
def rotate_key(account: Account = Depends(require_key_owner)):
    """Issue a new key and revoke the current one."""
    secret = credential_store.issue(account.id)
    return {"apiKey": secret, "message": "New API key generated. Your previous key no longer works."}
