"""Plan changes outside the Stripe webhook, guarded by the admin secret."""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ltgvault.api.deps import require_admin
from ltgvault.api.keys import normalized_email, subscriptions_payload
from ltgvault.core.errors import NotFoundError, ValidationError
from ltgvault.features.accounts import service as accounts_service
from ltgvault.models.account import BillingStatus
from ltgvault.models.feature import Feature


logger = logging.getLogger("ltgvault")

router = APIRouter(prefix="/api/admin", tags=["admin"])


class ActivateProRequest(BaseModel):
    email: str
    tool: str = Feature.RESUMEBUILDER.value


@router.post("/activate-pro")
def activate_pro(body: ActivateProRequest, actor: str = Depends(require_admin)):
    """Turn on one tool's subscription and reactivate the account."""
    try:
        feature = Feature((body.tool or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown tool: {body.tool}") from None

    account = accounts_service.get_account_by_email(normalized_email(body.email))
    if account is None:
        raise NotFoundError("No account found for this email")

    account = accounts_service.set_subscription(account.id, feature, True, status=BillingStatus.ACTIVE)
    logger.info(
        "[admin] plan activated",
        extra={"account_id": account.id, "feature": feature.value, "actor": actor},
    )
    return {
        "success": True,
        "message": f"Activated {feature.value} Pro for {account.email}",
        "account": {
            "id": account.id,
            "email": account.email,
            "subscriptions": subscriptions_payload(account),
            "subscriptionStatus": account.subscription_status.value,
        },
    }
