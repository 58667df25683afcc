"""Generation tools: PostUp, ThreadGen, ChapterGen and Resume Builder AI.

Each tool turns validated input into one or more LLM calls and post-processes
the output. Quota, rate limiting and usage recording happen around these calls
in the metered pipeline; nothing here touches the store.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ltgvault.core.errors import UpstreamError, ValidationError
from ltgvault.features.ai import prompts
from ltgvault.features.ai.client import LLMClient
from ltgvault.features.ai.text import (
    banned_opener,
    clamp_tweet,
    clean_content,
    parse_chapters,
    parse_string_list,
    strip_numbering,
    transcript_duration,
)
from ltgvault.models.feature import Feature


MAX_CONTENT_CHARS = 10000

RESUME_ACTIONS = tuple(prompts.RESUME_SYSTEM)

THREADGEN_ACTIONS = ("hooks", "body", "full_thread")


@dataclass(frozen=True)
class ToolResult:
    action: str
    result: Any
    metadata: Dict[str, Any] = field(default_factory=dict)


def validate_content(content: Optional[str], field_name: str = "content") -> str:
    text = (content or "").strip()
    if not text:
        raise ValidationError(f"{field_name} is required")
    if len(text) > MAX_CONTENT_CHARS:
        raise ValidationError(f"{field_name} too long. Maximum {MAX_CONTENT_CHARS} characters.")
    return text


def validate_action(feature: Feature, action: Optional[str]) -> Optional[str]:
    """Reject an unknown tool action before any quota is touched."""
    if not action:
        return None
    if feature is Feature.POSTUP and action not in prompts.POSTUP_REFINE_ACTIONS:
        raise ValidationError("Invalid action specified")
    if feature is Feature.THREADGEN and action not in THREADGEN_ACTIONS:
        raise ValidationError(f"Invalid action. Use one of: {', '.join(THREADGEN_ACTIONS)}")
    return action


async def generate_post(
    client: LLMClient,
    content: str,
    *,
    tone: str = "professional",
    action: Optional[str] = None,
    current_post: Optional[str] = None,
) -> ToolResult:
    """PostUp: a LinkedIn post from notes, or a refinement of an existing post."""
    text = validate_content(content)
    if validate_action(Feature.POSTUP, action):
        post = validate_content(current_post, "currentPost")
        raw = await client.complete(
            prompts.POSTUP_SYSTEM,
            prompts.postup_refine_prompt(post, action),
            temperature=0.7,
            feature=Feature.POSTUP.value,
        )
        usage_action = "refine"
    else:
        raw = await client.complete(
            prompts.POSTUP_SYSTEM,
            prompts.postup_user_prompt(text, tone),
            temperature=0.8,
            feature=Feature.POSTUP.value,
        )
        usage_action = "generate"

    cleaned = clean_content(raw)
    flagged = banned_opener(cleaned)
    return ToolResult(
        action=usage_action,
        result={"post": cleaned, "bannedOpener": flagged},
        metadata={"tone": tone, "flagged": bool(flagged)},
    )


async def _gather_or_cancel(*calls):
    """asyncio.gather that cancels and drains the remaining calls when one fails."""
    tasks = [asyncio.ensure_future(call) for call in calls]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def _thread_hooks(client: LLMClient, text: str) -> ToolResult:
    raw = await client.complete(
        prompts.THREADGEN_HOOKS_SYSTEM,
        prompts.threadgen_hooks_prompt(text),
        temperature=0.9,
        max_tokens=800,
        feature=Feature.THREADGEN.value,
    )
    hooks = [clamp_tweet(clean_content(strip_numbering(hook))) for hook in parse_string_list(raw)]
    hooks = [hook for hook in hooks if hook]
    if not hooks:
        raise UpstreamError("Failed to parse hooks. Please try again.")
    return ToolResult(action="hooks", result={"hooks": hooks}, metadata={"hooks": len(hooks)})


async def generate_thread(
    client: LLMClient,
    content: str,
    *,
    hook: Optional[str] = None,
    action: Optional[str] = None,
) -> ToolResult:
    """
    ThreadGen.

    Actions:
    - hooks: hook options to pick from
    - body: numbered thread body plus CTAs, opening from the chosen `hook`
    - full_thread (default): body plus CTAs, `hook` optional
    """
    text = validate_content(content)
    action = validate_action(Feature.THREADGEN, action) or "full_thread"
    if action == "hooks":
        return await _thread_hooks(client, text)

    chosen_hook = (hook or "").strip()
    if action == "body" and not chosen_hook:
        raise ValidationError("hook is required")

    raw_body, raw_ctas = await _gather_or_cancel(
        client.complete(
            prompts.THREADGEN_BODY_SYSTEM,
            prompts.threadgen_body_prompt(text, chosen_hook),
            temperature=0.7,
            max_tokens=2000,
            feature=Feature.THREADGEN.value,
        ),
        client.complete(
            prompts.THREADGEN_CTA_SYSTEM,
            prompts.threadgen_cta_prompt(text),
            temperature=0.8,
            max_tokens=600,
            feature=Feature.THREADGEN.value,
        ),
    )

    tweets = [clean_content(strip_numbering(tweet)) for tweet in parse_string_list(raw_body)]
    tweets = [tweet for tweet in tweets if tweet]
    if not tweets:
        raise UpstreamError("Failed to parse thread. Please try again.")
    total = len(tweets)
    numbered = [clamp_tweet(f"{index}/{total} {tweet}") for index, tweet in enumerate(tweets, start=1)]
    ctas = [clean_content(cta) for cta in parse_string_list(raw_ctas)]

    result = {"body": numbered, "ctas": [cta for cta in ctas if cta]}
    if chosen_hook:
        result["hook"] = chosen_hook
    return ToolResult(action=action, result=result, metadata={"tweets": total})


async def generate_chapters(client: LLMClient, transcript: str) -> ToolResult:
    """ChapterGen: "MM:SS Title" markers from a transcript."""
    text = validate_content(transcript, "transcript")
    raw = await client.complete(
        prompts.CHAPTERGEN_SYSTEM,
        prompts.chaptergen_user_prompt(text, transcript_duration(text)),
        temperature=0.3,
        max_tokens=2000,
        feature=Feature.CHAPTERGEN.value,
    )
    chapters = parse_chapters(raw)
    if not chapters:
        raise UpstreamError("Failed to parse chapters. Please try again.")
    return ToolResult(action="generate", result={"chapters": chapters}, metadata={"chapters": len(chapters)})


async def generate_resume_text(
    client: LLMClient,
    action: str,
    content: str,
    context: Optional[Dict[str, str]] = None,
) -> ToolResult:
    """Resume Builder AI: bullets, summary or cover letter."""
    if action not in RESUME_ACTIONS:
        raise ValidationError(f"Invalid action. Use one of: {', '.join(RESUME_ACTIONS)}")
    text = validate_content(content)
    raw = await client.complete(
        prompts.RESUME_SYSTEM[action],
        prompts.resume_user_prompt(text, context or {}),
        temperature=0.6,
        max_tokens=1200,
        feature=Feature.RESUMEBUILDER.value,
    )
    cleaned = clean_content(raw)
    if action == "bullets":
        bullets = [strip_numbering(line.lstrip("-*• ")) for line in cleaned.splitlines()]
        result: Any = {"bullets": [bullet for bullet in bullets if bullet]}
    else:
        result = {"text": cleaned}
    return ToolResult(action=action, result=result)
