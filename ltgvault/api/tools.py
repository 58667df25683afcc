"""Metered generation tools and the caller's usage summary."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ltgvault.api.deps import require_account
from ltgvault.api.metered import run_metered
from ltgvault.core.errors import NotFoundError, ValidationError
from ltgvault.features.ai import service as ai_service
from ltgvault.features.ai.client import LLMClient, get_llm_client
from ltgvault.features.entitlements.service import evaluate
from ltgvault.features.usage.service import usage_summary
from ltgvault.models.account import Account
from ltgvault.models.feature import Feature, TOOL_FEATURES


router = APIRouter(prefix="/api", tags=["tools"])


class ToolRequest(BaseModel):
    content: Optional[str] = None
    tone: str = "professional"
    action: Optional[str] = None
    currentPost: Optional[str] = None
    hook: Optional[str] = None


def _tool_feature(tool: str) -> Feature:
    for feature in TOOL_FEATURES:
        if feature.value == tool.lower():
            return feature
    raise NotFoundError("Tool not found. Valid tools: postup, threadgen, chaptergen")


@router.post("/tools/{tool}")
async def run_tool(
    tool: str,
    body: ToolRequest,
    request: Request,
    account: Account = Depends(require_account),
    client: LLMClient = Depends(get_llm_client),
):
    feature = _tool_feature(tool)
    field_name = "transcript" if feature is Feature.CHAPTERGEN else "content"
    content = ai_service.validate_content(body.content, field_name)
    action = ai_service.validate_action(feature, body.action)
    if feature is Feature.POSTUP and action:
        ai_service.validate_content(body.currentPost, "currentPost")
    if feature is Feature.THREADGEN and action == "body" and not (body.hook or "").strip():
        raise ValidationError("hook is required")

    if feature is Feature.POSTUP:
        async def work():
            return await ai_service.generate_post(
                client, content, tone=body.tone, action=action, current_post=body.currentPost
            )
    elif feature is Feature.THREADGEN:
        async def work():
            return await ai_service.generate_thread(client, content, hook=body.hook, action=action)
    else:
        async def work():
            return await ai_service.generate_chapters(client, content)

    return await run_metered(account, feature, work, path=request.url.path)


@router.get("/usage")
def get_usage(account: Account = Depends(require_account)):
    """Per-feature used/limit for the caller."""
    counts = usage_summary(account.id)
    usage = {}
    for feature in Feature:
        decision = evaluate(account, feature)
        usage[feature.value] = {
            "used": decision.used,
            "limit": decision.limit,
            "remaining": decision.remaining,
            "tier": decision.tier.value,
            "window": decision.window.value,
            "lifetime": counts[feature]["lifetime"],
        }
    return {"usage": usage}
