from __future__ import annotations

from typing import Any, Dict, List, Optional

from anthropic import APIConnectionError, APIStatusError, APITimeoutError, AsyncAnthropic

from dealscout.config import Settings, get_settings
from dealscout.services.llm.types import LLMProviderError, classify_retryable_error

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search"}


def collect_text(content: Any) -> str:
    """Concatenate the text blocks of a message response, skipping tool blocks."""
    parts: List[str] = []
    for block in content or []:
        if getattr(block, "type", None) != "text":
            continue
        value = getattr(block, "text", None)
        if value:
            parts.append(str(value))
    return "".join(parts).strip()


class AnthropicProvider:
    name = "anthropic"

    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        if not settings.anthropic_api_key:
            raise LLMProviderError("ANTHROPIC_API_KEY not configured", retryable=False)
        self._client = AsyncAnthropic(api_key=settings.anthropic_api_key)

    async def generate(
        self,
        *,
        model: str,
        prompt: str,
        max_tokens: int,
        timeout_seconds: int,
        use_web_search: bool = False,
    ) -> str:
        kwargs: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "timeout": timeout_seconds,
        }
        if use_web_search:
            kwargs["tools"] = [WEB_SEARCH_TOOL]
        try:
            response = await self._client.messages.create(**kwargs)
        except (APITimeoutError, APIConnectionError) as exc:
            raise LLMProviderError(str(exc), retryable=True) from exc
        except APIStatusError as exc:
            retryable = exc.status_code in (429, 500, 502, 503, 504, 529)
            raise LLMProviderError(f"{exc.status_code}: {exc}", retryable=retryable) from exc
        except Exception as exc:
            raise LLMProviderError(str(exc), retryable=classify_retryable_error(exc)) from exc
        return collect_text(getattr(response, "content", None))
