"""
ltgvault/models/account.py

Account: the billing/identity entity a human controls.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict

from ltgvault.models.feature import Feature


class BillingStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    PENDING = "pending"


# Statuses that lock an account out of metered endpoints
INACTIVE_STATUSES = (BillingStatus.PAST_DUE, BillingStatus.CANCELED)


class Account(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    subscriptions: Dict[Feature, bool]
    subscription_status: BillingStatus = BillingStatus.ACTIVE
    stripe_customer_id: Optional[str] = None
    created_at: datetime

    def is_subscribed(self, feature: Feature) -> bool:
        return bool(self.subscriptions.get(feature, False))

    @property
    def is_inactive(self) -> bool:
        return self.subscription_status in INACTIVE_STATUSES

    @staticmethod
    def normalize_email(email: str) -> str:
        return email.strip().lower()
