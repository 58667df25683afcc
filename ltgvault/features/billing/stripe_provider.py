"""
Stripe billing provider.

Handles webhook signature verification and the few Stripe lookups the
webhook needs. Subscription state mapping lives in billing/service.py.
"""
import json
import logging
from typing import Dict, Any, Optional
import stripe

from ltgvault.core.config import settings
from ltgvault.core.errors import AppError


logger = logging.getLogger("ltgvault")


class BillingWebhookError(AppError):
    code = "INVALID_WEBHOOK"
    status_code = 400


class BillingNotConfiguredError(AppError):
    code = "BILLING_NOT_CONFIGURED"
    status_code = 503


class StripeProvider:
    """Thin wrapper over the stripe SDK."""

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

        if not self.webhook_secret:
            raise BillingNotConfiguredError("STRIPE_WEBHOOK_SECRET not configured")

        if self.secret_key:
            stripe.api_key = self.secret_key

    def verify_event(self, headers: Dict[str, str], body: bytes) -> Dict[str, Any]:
        """Verify the Stripe signature and return the event as a plain dict."""
        sig_header = headers.get("stripe-signature") or headers.get("Stripe-Signature")
        if not sig_header:
            raise BillingWebhookError("Missing stripe-signature header")

        try:
            stripe.Webhook.construct_event(body, sig_header, self.webhook_secret)
        except ValueError:
            raise BillingWebhookError("Invalid payload")
        except stripe.SignatureVerificationError:
            raise BillingWebhookError("Invalid signature")

        event = json.loads(body)
        if not event.get("id") or not event.get("type"):
            raise BillingWebhookError("Invalid payload")
        return event

    def subscription_price_id(self, subscription_id: str) -> Optional[str]:
        """Price of the first item of a subscription, or None when unavailable."""
        if not self.secret_key or not subscription_id:
            return None
        try:
            subscription = stripe.Subscription.retrieve(subscription_id)
            return subscription["items"]["data"][0]["price"]["id"]
        except (stripe.StripeError, KeyError, IndexError) as exc:
            logger.warning(
                "[billing] subscription lookup failed",
                extra={"error_code": type(exc).__name__},
            )
            return None


def get_provider() -> StripeProvider:
    """FastAPI dependency for the billing provider."""
    return StripeProvider()
