from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class LLMStage(str, Enum):
    """Pipeline steps that call a model. Each has its own route list in settings."""

    candidate_scoring = "candidate_scoring"
    ip_assessment = "ip_assessment"
    report_generation = "report_generation"


@dataclass
class LLMRequest:
    stage: LLMStage
    prompt: str
    max_tokens: int = 2000
    timeout_seconds: int = 120
    # Research reports need live web results; scoring and IP checks do not.
    use_web_search: bool = False


@dataclass
class ModelAttemptTrace:
    stage: str
    provider: str
    model: str
    latency_ms: int
    status: str  # success | retryable_error | terminal_error
    retry_count: int
    error_class: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None


@dataclass
class LLMResponse:
    text: str
    provider: str
    model: str
    attempts: List[ModelAttemptTrace] = field(default_factory=list)


class LLMOrchestrationError(RuntimeError):
    """Every configured route for a stage failed."""

    def __init__(self, message: str, *, attempts: Optional[List[ModelAttemptTrace]] = None) -> None:
        super().__init__(message)
        self.attempts = attempts or []


class LLMProviderError(RuntimeError):
    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


_RETRYABLE_MARKERS = (
    "rate limit",
    "429",
    "overloaded",
    "529",
    "timeout",
    "timed out",
    "connection reset",
    "connection aborted",
    "502",
    "503",
    "504",
)


def classify_retryable_error(exc: Exception) -> bool:
    """Transient provider failures (throttling, overload, gateway, timeouts) are worth a retry."""
    message = str(exc).lower()
    return any(marker in message for marker in _RETRYABLE_MARKERS)


def now_iso() -> str:
    return datetime.utcnow().isoformat()
