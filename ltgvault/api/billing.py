"""Stripe webhook endpoint."""

from fastapi import APIRouter, Depends, Request

from ltgvault.features.billing.service import process_webhook_event
from ltgvault.features.billing.stripe_provider import StripeProvider, get_provider


router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.post("/webhook")
async def stripe_webhook(request: Request, provider: StripeProvider = Depends(get_provider)):
    body = await request.body()
    return process_webhook_event(dict(request.headers), body, provider)
