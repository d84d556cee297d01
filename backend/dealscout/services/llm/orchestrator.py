from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List, Optional, Tuple

from dealscout.config import Settings, get_settings
from dealscout.services.llm.providers.anthropic_provider import AnthropicProvider
from dealscout.services.llm.types import (
    LLMOrchestrationError,
    LLMProviderError,
    LLMRequest,
    LLMResponse,
    ModelAttemptTrace,
    classify_retryable_error,
    now_iso,
)

logger = logging.getLogger(__name__)

DEFAULT_ROUTE = ("anthropic", "claude-sonnet-4-20250514")


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, LLMProviderError) and exc.retryable:
        return True
    return classify_retryable_error(exc)


class LLMOrchestrator:
    """Routes each pipeline stage to its configured models.

    Routes are tried in order. Within a route, transient errors are retried up
    to ``llm_retry_max_attempts`` times with linear backoff; a terminal error
    moves straight on to the next route. Every call is recorded as a
    ``ModelAttemptTrace`` on the response or on the final error.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._providers: Dict[str, AnthropicProvider] = {}

    def _provider(self, name: str):
        key = str(name or "").strip().lower()
        if key != "anthropic":
            raise LLMProviderError(f"Unsupported LLM provider: {name}", retryable=False)
        if key not in self._providers:
            self._providers[key] = AnthropicProvider(self._settings)
        return self._providers[key]

    def _routes_for_stage(self, stage_name: str) -> List[Tuple[str, str]]:
        return self._settings.stage_model_routes(stage_name) or [DEFAULT_ROUTE]

    async def _call(self, request: LLMRequest, provider_name: str, model: str) -> str:
        provider = self._provider(provider_name)
        return await provider.generate(
            model=model,
            prompt=request.prompt,
            max_tokens=request.max_tokens,
            timeout_seconds=max(1, int(request.timeout_seconds)),
            use_web_search=bool(request.use_web_search),
        )

    async def run_stage(self, request: LLMRequest) -> LLMResponse:
        stage = request.stage.value
        max_attempts = max(1, int(self._settings.llm_retry_max_attempts))
        backoff = max(0.0, float(self._settings.llm_retry_backoff_seconds))
        attempts: List[ModelAttemptTrace] = []

        for provider_name, model in self._routes_for_stage(stage):
            for retry_count in range(max_attempts):
                started = now_iso()
                t0 = time.perf_counter()
                trace = ModelAttemptTrace(
                    stage=stage,
                    provider=provider_name,
                    model=model,
                    latency_ms=0,
                    status="success",
                    retry_count=retry_count,
                    started_at=started,
                )
                attempts.append(trace)
                try:
                    text = await self._call(request, provider_name, model)
                except Exception as exc:
                    retryable = _is_retryable(exc)
                    trace.latency_ms = int((time.perf_counter() - t0) * 1000)
                    trace.ended_at = now_iso()
                    trace.status = "retryable_error" if retryable else "terminal_error"
                    trace.error_class = exc.__class__.__name__
                    trace.error_message = str(exc)[:500]
                    logger.warning(
                        "LLM %s via %s:%s failed (attempt %d/%d, retryable=%s): %s",
                        stage, provider_name, model, retry_count + 1, max_attempts, retryable, exc,
                    )
                    if not retryable or retry_count == max_attempts - 1:
                        break
                    if backoff > 0:
                        await asyncio.sleep(backoff * (retry_count + 1))
                    continue

                trace.latency_ms = int((time.perf_counter() - t0) * 1000)
                trace.ended_at = now_iso()
                logger.debug("LLM %s served by %s:%s in %dms", stage, provider_name, model, trace.latency_ms)
                return LLMResponse(text=text, provider=provider_name, model=model, attempts=attempts)

        raise LLMOrchestrationError(f"All model routes failed for stage={stage}", attempts=attempts)
