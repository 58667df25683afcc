"""
Resume Builder feature gating.

Free tier: 1 resume, 3 job applications, the clean template.
Pro tier: unlimited resumes and jobs, every template.

Caps are checked by counting the account's owned rows against the tier's cap.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple
import logging
from sqlalchemy import select, func

from ltgvault.core.database import get_db_session, resumes, job_applications
from ltgvault.core.errors import FeatureLockedError, ValidationError
from ltgvault.core.metrics import entitlement_denied_total
from ltgvault.features.entitlements.policy import Tier
from ltgvault.features.entitlements.service import tier_for, upgrade_url
from ltgvault.models.account import Account
from ltgvault.models.feature import Feature


logger = logging.getLogger("ltgvault")


class Resource(str, Enum):
    RESUMES = "resumes"
    JOBS = "jobs"


FREE_TEMPLATES: Tuple[str, ...] = ("clean",)
PRO_TEMPLATES: Tuple[str, ...] = ("clean", "modern", "professional", "bold", "minimal", "compact")

# None = unlimited
RESOURCE_CAPS = {
    Resource.RESUMES: {Tier.FREE: 1, Tier.PAID: None},
    Resource.JOBS: {Tier.FREE: 3, Tier.PAID: None},
}

_RESOURCE_TABLES = {
    Resource.RESUMES: resumes,
    Resource.JOBS: job_applications,
}

_RESOURCE_LABELS = {
    Resource.RESUMES: "resume",
    Resource.JOBS: "job application",
}


@dataclass(frozen=True)
class ResourceDecision:
    resource: Resource
    allowed: bool
    current: int
    limit: Optional[int]
    tier: Tier


def resume_tier(account: Account) -> Tier:
    return tier_for(account, Feature.RESUMEBUILDER)


def count_resources(account_id: str, resource: Resource) -> int:
    table = _RESOURCE_TABLES[resource]
    with get_db_session() as session:
        return int(
            session.execute(
                select(func.count()).select_from(table).where(table.c.account_id == account_id)
            ).scalar()
            or 0
        )


def check_resource(account: Account, resource: Resource) -> ResourceDecision:
    tier = resume_tier(account)
    limit = RESOURCE_CAPS[resource][tier]
    current = count_resources(account.id, resource)
    allowed = limit is None or current < limit
    return ResourceDecision(resource=resource, allowed=allowed, current=current, limit=limit, tier=tier)


def require_resource(account: Account, resource: Resource) -> ResourceDecision:
    """Raise FeatureLockedError when the account is at its cap for `resource`."""
    decision = check_resource(account, resource)
    if decision.allowed:
        return decision

    label = _RESOURCE_LABELS[resource]
    entitlement_denied_total.inc({"feature": f"resume.{resource.value}", "tier": decision.tier.value})
    logger.warning(
        "[gating] resource cap reached",
        extra={
            "account_id": account.id,
            "feature": f"resume.{resource.value}",
            "tier": decision.tier.value,
            "used": decision.current,
            "limit": decision.limit,
        },
    )
    raise FeatureLockedError(
        f"Free accounts can have {decision.limit} {label}{'s' if decision.limit != 1 else ''}. "
        "Upgrade to Pro for unlimited.",
        extra={
            "usage": {"used": decision.current, "limit": decision.limit},
            "upgradeUrl": upgrade_url(Feature.RESUMEBUILDER),
        },
    )


def allowed_templates(account: Account) -> Tuple[str, ...]:
    return PRO_TEMPLATES if resume_tier(account) is Tier.PAID else FREE_TEMPLATES


def require_template(account: Account, template: str) -> str:
    """Validate the template name and check the tier may use it."""
    name = (template or "").strip().lower()
    if name not in PRO_TEMPLATES:
        raise ValidationError(f"Unknown template: {template}")
    if name in allowed_templates(account):
        return name

    entitlement_denied_total.inc({"feature": "resume.template", "tier": Tier.FREE.value})
    logger.warning(
        "[gating] template locked",
        extra={"account_id": account.id, "feature": "resume.template", "tier": Tier.FREE.value},
    )
    raise FeatureLockedError(
        f"The {name} template is a Pro feature. Upgrade to unlock all templates.",
        extra={"upgradeUrl": upgrade_url(Feature.RESUMEBUILDER)},
    )
