"""LLM client used by the generation tools.

Wraps groq.AsyncGroq chat completions with a bounded timeout and maps provider
failures onto UpstreamError / UpstreamTimeoutError. Raw provider messages are
logged server-side only.
"""

import asyncio
from typing import Optional

import groq

from ltgvault.core.config import settings
from ltgvault.core.errors import ServiceUnavailableError, UpstreamError, UpstreamTimeoutError
from ltgvault.core.logging import log_event
from ltgvault.core.metrics import upstream_errors_total


class LLMClient:
    """Interface for chat completion. Tests substitute a fake through get_llm_client."""

    async def complete(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        feature: Optional[str] = None,
    ) -> str:
        raise NotImplementedError


class GroqLLMClient(LLMClient):
    def __init__(self, api_key: str, model: Optional[str] = None, timeout: Optional[float] = None):
        self.model = model or settings.LLM_MODEL
        self.timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        self._client = groq.AsyncGroq(api_key=api_key, timeout=self.timeout, max_retries=0)

    async def complete(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        feature: Optional[str] = None,
    ) -> str:
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                    model=self.model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, groq.APITimeoutError):
            upstream_errors_total.inc({"feature": feature or "", "kind": "timeout"})
            log_event("warning", "[ai] upstream timeout", feature=feature, error_code=UpstreamTimeoutError.code)
            raise UpstreamTimeoutError("The AI service took too long to respond. Please try again.")
        except groq.APIError as exc:
            upstream_errors_total.inc({"feature": feature or "", "kind": "api"})
            log_event(
                "error",
                "[ai] upstream error",
                feature=feature,
                error_code=UpstreamError.code,
                extra={"provider_error": exc},
            )
            raise UpstreamError("Failed to generate content. Please try again.") from None

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            upstream_errors_total.inc({"feature": feature or "", "kind": "empty"})
            raise UpstreamError("Empty response from AI. Please try again.")
        return content


def get_llm_client() -> LLMClient:
    """FastAPI dependency for the configured LLM client."""
    if not settings.GROQ_API_KEY:
        raise ServiceUnavailableError("AI provider is not configured", code="AI_NOT_CONFIGURED")
    return GroqLLMClient(api_key=settings.GROQ_API_KEY)
