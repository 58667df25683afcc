"""
Billing webhook processing.

Maps Stripe subscription lifecycle events onto account state:
- checkout.session.completed: feature flag on, status active, key issued if none
- customer.subscription.updated: feature flag follows the mapped status (account status untouched)
- customer.subscription.deleted: feature flag off
- invoice.payment_failed: status past_due

Idempotent per Stripe event id via the billing_events table.
"""
import hashlib
import logging
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Any, Mapping, Optional
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from ltgvault.core.config import Settings, settings
from ltgvault.core.database import get_db_session, billing_events, utcnow
from ltgvault.features.accounts import service as accounts_service
from ltgvault.features.billing.stripe_provider import StripeProvider
from ltgvault.features.credentials import store as credential_store
from ltgvault.models.account import Account, BillingStatus
from ltgvault.models.feature import Feature


logger = logging.getLogger("ltgvault")

_STATUS_MAP = {
    "active": BillingStatus.ACTIVE,
    "trialing": BillingStatus.ACTIVE,
    "past_due": BillingStatus.PAST_DUE,
    "canceled": BillingStatus.CANCELED,
    "unpaid": BillingStatus.CANCELED,
}


def map_stripe_status(status: Optional[str]) -> BillingStatus:
    return _STATUS_MAP.get((status or "").lower(), BillingStatus.PENDING)


def price_table(settings_obj: Optional[Settings] = None) -> Mapping[str, Feature]:
    """Stripe price id -> Feature, built from configuration."""
    cfg = settings_obj or settings
    configured = {
        cfg.STRIPE_PRICE_POSTUP: Feature.POSTUP,
        cfg.STRIPE_PRICE_THREADGEN: Feature.THREADGEN,
        cfg.STRIPE_PRICE_CHAPTERGEN: Feature.CHAPTERGEN,
        cfg.STRIPE_PRICE_RESUMEBUILDER: Feature.RESUMEBUILDER,
    }
    return MappingProxyType({price.strip(): feature for price, feature in configured.items() if price and price.strip()})


def _first_price_id(obj: Dict[str, Any]) -> Optional[str]:
    items = (obj.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


def _feature_from_metadata(obj: Dict[str, Any]) -> Optional[Feature]:
    tool = (obj.get("metadata") or {}).get("tool")
    if not tool:
        return None
    try:
        return Feature(tool.strip().lower())
    except ValueError:
        return None


def _account_for_customer(obj: Dict[str, Any]) -> Optional[Account]:
    customer_id = obj.get("customer")
    if customer_id:
        account = accounts_service.get_account_by_customer(customer_id)
        if account:
            return account
    email = obj.get("customer_email") or (obj.get("metadata") or {}).get("user_email")
    return accounts_service.get_account_by_email(email) if email else None


def handle_checkout_completed(obj: Dict[str, Any], provider: StripeProvider, prices: Mapping[str, Feature]) -> Optional[str]:
    email = (obj.get("metadata") or {}).get("user_email") or obj.get("customer_email") or (
        obj.get("customer_details") or {}
    ).get("email")
    if not email:
        logger.warning("[billing] checkout without email")
        return None

    feature = _feature_from_metadata(obj)
    if feature is None:
        feature = prices.get(provider.subscription_price_id(obj.get("subscription")) or "")
    if feature is None:
        logger.warning("[billing] checkout tool unknown")
        return None

    customer_id = obj.get("customer")
    account = accounts_service.get_account_by_email(email)
    if account is None:
        account = accounts_service.create_account(
            email,
            subscriptions={feature: True},
            stripe_customer_id=customer_id,
        )
    else:
        account = accounts_service.set_subscription(
            account.id, feature, True, status=BillingStatus.ACTIVE, stripe_customer_id=customer_id
        )

    if credential_store.active_credential(account.id) is None:
        credential_store.issue(account.id)

    logger.info("[billing] checkout completed", extra={"account_id": account.id, "feature": feature.value})
    return account.id


def handle_subscription_updated(obj: Dict[str, Any], prices: Mapping[str, Feature]) -> Optional[str]:
    feature = _feature_from_metadata(obj) or prices.get(_first_price_id(obj) or "")
    account = _account_for_customer(obj)
    if feature is None or account is None:
        logger.warning("[billing] subscription update unmatched", extra={"status": obj.get("status")})
        return None

    # Only the one tool follows the Stripe status; account-level past_due comes from invoice.payment_failed
    status = map_stripe_status(obj.get("status"))
    accounts_service.set_subscription(account.id, feature, status is BillingStatus.ACTIVE)
    logger.info(
        "[billing] subscription updated",
        extra={"account_id": account.id, "feature": feature.value, "status": status.value},
    )
    return account.id


def handle_subscription_deleted(obj: Dict[str, Any], prices: Mapping[str, Feature]) -> Optional[str]:
    feature = _feature_from_metadata(obj) or prices.get(_first_price_id(obj) or "")
    account = _account_for_customer(obj)
    if feature is None or account is None:
        logger.warning("[billing] subscription delete unmatched")
        return None

    accounts_service.set_subscription(account.id, feature, False)
    logger.info("[billing] subscription canceled", extra={"account_id": account.id, "feature": feature.value})
    return account.id


def handle_payment_failed(obj: Dict[str, Any]) -> Optional[str]:
    account = _account_for_customer(obj)
    if account is None:
        logger.warning("[billing] payment failure unmatched")
        return None
    accounts_service.set_status(account.id, BillingStatus.PAST_DUE)
    logger.warning("[billing] payment failed", extra={"account_id": account.id, "status": "past_due"})
    return account.id


def apply_event(event: Dict[str, Any], provider: StripeProvider, prices: Optional[Mapping[str, Feature]] = None) -> Optional[str]:
    """Apply one verified event. Returns the affected account id, if any."""
    table = prices if prices is not None else price_table()
    event_type = event["type"]
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == "checkout.session.completed":
        return handle_checkout_completed(obj, provider, table)
    if event_type == "customer.subscription.updated":
        return handle_subscription_updated(obj, table)
    if event_type == "customer.subscription.deleted":
        return handle_subscription_deleted(obj, table)
    if event_type == "invoice.payment_failed":
        return handle_payment_failed(obj)

    logger.info("[billing] event ignored", extra={"status": event_type})
    return None


def _claim_event(event: Dict[str, Any], body: bytes, now: datetime) -> bool:
    """Record the event id. False when it was already processed.

    An event that was recorded but failed is claimed again so a Stripe retry
    re-applies it.
    """
    with get_db_session() as session:
        existing = session.execute(
            select(billing_events.c.id, billing_events.c.processed)
            .where(billing_events.c.stripe_event_id == event["id"])
        ).first()
        if existing:
            return not existing.processed

    try:
        with get_db_session() as session:
            session.execute(
                insert(billing_events).values(
                    stripe_event_id=event["id"],
                    event_type=event["type"],
                    received_at=now,
                    payload_hash=hashlib.sha256(body).hexdigest(),
                    processed=False,
                )
            )
    except IntegrityError:
        return False
    return True


def process_webhook_event(
    headers: Dict[str, str],
    body: bytes,
    provider: StripeProvider,
    prices: Optional[Mapping[str, Feature]] = None,
) -> Dict[str, Any]:
    """
    Process a billing webhook (idempotent).

    1. Verify signature
    2. Skip if the event id was already recorded
    3. Apply state changes
    4. Mark processed, or store the error and re-raise

    Raises:
        BillingWebhookError: If the signature or payload is invalid
    """
    event = provider.verify_event(headers, body)
    now = utcnow()

    if not _claim_event(event, body, now):
        logger.info("[billing] duplicate event skipped", extra={"status": event["type"]})
        return {"received": True, "duplicate": True}

    try:
        account_id = apply_event(event, provider, prices)
    except Exception as exc:
        with get_db_session() as session:
            session.execute(
                update(billing_events)
                .where(billing_events.c.stripe_event_id == event["id"])
                .values(error=str(exc)[:500])
            )
        raise

    with get_db_session() as session:
        session.execute(
            update(billing_events)
            .where(billing_events.c.stripe_event_id == event["id"])
            .values(processed=True, processed_at=utcnow())
        )
    return {"received": True, "duplicate": False, "accountId": account_id}
