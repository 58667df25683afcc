"""
Account domain service.
- create_account(email)
- get_account / get_account_by_email / get_account_by_customer
- set_subscription(account_id, feature, enabled)
- set_status(account_id, status)
"""

import uuid
from datetime import datetime
from typing import Dict, Optional
from sqlalchemy import select, insert, update
from sqlalchemy.engine import Row
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ltgvault.core.database import get_db_session, accounts, as_utc, utcnow
from ltgvault.core.errors import ConflictError, NotFoundError
from ltgvault.models.account import Account, BillingStatus
from ltgvault.models.feature import Feature, SUBSCRIPTION_COLUMNS


def row_to_account(row: Row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        subscriptions={feature: bool(getattr(row, column)) for feature, column in SUBSCRIPTION_COLUMNS.items()},
        subscription_status=BillingStatus(row.subscription_status),
        stripe_customer_id=row.stripe_customer_id,
        created_at=as_utc(row.created_at),
    )


def fetch_account(session: Session, account_id: str) -> Optional[Account]:
    row = session.execute(select(accounts).where(accounts.c.id == account_id)).first()
    return row_to_account(row) if row else None


def get_account(account_id: str) -> Optional[Account]:
    with get_db_session() as session:
        return fetch_account(session, account_id)


def get_account_by_email(email: str) -> Optional[Account]:
    normalized = Account.normalize_email(email)
    with get_db_session() as session:
        row = session.execute(select(accounts).where(accounts.c.email == normalized)).first()
        return row_to_account(row) if row else None


def get_account_by_customer(stripe_customer_id: str) -> Optional[Account]:
    with get_db_session() as session:
        row = session.execute(
            select(accounts).where(accounts.c.stripe_customer_id == stripe_customer_id)
        ).first()
        return row_to_account(row) if row else None


def create_account(
    email: str,
    *,
    subscriptions: Optional[Dict[Feature, bool]] = None,
    status: BillingStatus = BillingStatus.ACTIVE,
    stripe_customer_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Account:
    """Create an account. Email is stored lower-cased and must be unique."""
    normalized = Account.normalize_email(email)
    if get_account_by_email(normalized):
        raise ConflictError("An account with this email already exists", code="ACCOUNT_EXISTS")

    created = now or utcnow()
    flags = subscriptions or {}
    account_id = str(uuid.uuid4())
    values = {
        "id": account_id,
        "email": normalized,
        "subscription_status": status.value,
        "stripe_customer_id": stripe_customer_id,
        "created_at": created,
        "updated_at": created,
    }
    for feature, column in SUBSCRIPTION_COLUMNS.items():
        values[column] = bool(flags.get(feature, False))

    try:
        with get_db_session() as session:
            session.execute(insert(accounts).values(**values))
            return fetch_account(session, account_id)
    except IntegrityError:
        # Lost a race with a concurrent signup or checkout for the same email
        raise ConflictError("An account with this email already exists", code="ACCOUNT_EXISTS") from None


def _update(account_id: str, values: dict) -> Account:
    values["updated_at"] = utcnow()
    with get_db_session() as session:
        result = session.execute(update(accounts).where(accounts.c.id == account_id).values(**values))
        if result.rowcount == 0:
            raise NotFoundError(f"Account not found: {account_id}")
        return fetch_account(session, account_id)


def set_subscription(
    account_id: str,
    feature: Feature,
    enabled: bool,
    *,
    status: Optional[BillingStatus] = None,
    stripe_customer_id: Optional[str] = None,
) -> Account:
    values = {SUBSCRIPTION_COLUMNS[feature]: enabled}
    if status is not None:
        values["subscription_status"] = status.value
    if stripe_customer_id:
        values["stripe_customer_id"] = stripe_customer_id
    return _update(account_id, values)


def set_status(account_id: str, status: BillingStatus) -> Account:
    return _update(account_id, {"subscription_status": status.value})
