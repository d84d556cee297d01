from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from dealscout.config import Settings, get_settings
from dealscout.services.enrichment.patents import IPUpsideEvaluator
from dealscout.services.llm.orchestrator import LLMOrchestrator
from dealscout.services.llm.parsing import parse_json_object
from dealscout.services.llm.types import LLMRequest, LLMStage
from dealscout.services.revenue import format_millions, parse_revenue
from dealscout.services.types import Candidate, Confidence, OwnershipType, SearchCriteria, normalize_confidence

logger = logging.getLogger(__name__)

PARSE_FAILURE_REASON = "Failed to parse scoring response"


@dataclass
class ScoreResult:
    score: int
    confidence: str
    reasoning: str
    estimated_revenue: str
    industry: str
    geographic_focus: str
    industry_match: bool
    ownership_type: str
    ownership_notes: str


def build_scoring_prompt(candidate: Candidate, criteria: SearchCriteria) -> str:
    return f"""Score this company for M&A target fit (1-10):

Company: {candidate.name}
URL: {candidate.url}
Description: {candidate.text}

Criteria:
- Industry: {criteria.industry or "Any"}
- Revenue: {criteria.revenue_range or "Any"}
- Geography: {criteria.geographic_focus or "Any"}
- Strategy: {criteria.strategy or "buy-side"}

Return JSON only with this structure:
{{
  "score": 8,
  "confidence": "High",
  "reasoning": "...",
  "estimatedRevenue": "$25M",
  "industry": "Healthcare",
  "geographicFocus": "United States",
  "industryMatch": true,
  "ownershipType": "Founder-Led",
  "ownershipNotes": "Founded in 2015, still led by original founders"
}}

For ownershipType, determine from the description:
- "Founder-Led" if still run by founders
- "PE-Backed" if owned by private equity
- "Family-Owned" if multi-generational family business
- "Unknown" if unclear

Confidence levels:
- High: Clear fit, strong indicators
- Medium: Reasonable fit, some uncertainty
- Low: Marginal fit or significant gaps"""


def fallback_score(criteria: SearchCriteria) -> ScoreResult:
    return ScoreResult(
        score=5,
        confidence=Confidence.low.value,
        reasoning=PARSE_FAILURE_REASON,
        estimated_revenue="",
        industry=criteria.industry or "Unknown",
        geographic_focus=criteria.geographic_focus or "",
        industry_match=False,
        ownership_type=OwnershipType.unknown.value,
        ownership_notes="",
    )


def _as_score(value: Any) -> int:
    if isinstance(value, bool):
        return 5
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return 5


def parse_score_response(text: str, criteria: SearchCriteria) -> ScoreResult:
    data = parse_json_object(text)
    if data is None:
        logger.warning("Could not parse scoring JSON: %s", str(text or "")[:200])
        return fallback_score(criteria)

    return ScoreResult(
        score=_as_score(data.get("score", 5)),
        confidence=normalize_confidence(data.get("confidence")),
        reasoning=str(data.get("reasoning") or ""),
        estimated_revenue=str(data.get("estimatedRevenue") or ""),
        industry=str(data.get("industry") or criteria.industry or ""),
        geographic_focus=str(data.get("geographicFocus") or criteria.geographic_focus or ""),
        industry_match=bool(data.get("industryMatch", False)),
        ownership_type=str(data.get("ownershipType") or OwnershipType.unknown.value),
        ownership_notes=str(data.get("ownershipNotes") or ""),
    )


class CandidateScorer:
    def __init__(
        self,
        llm: Optional[LLMOrchestrator] = None,
        ip_evaluator: Optional[IPUpsideEvaluator] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._llm = llm or LLMOrchestrator(self._settings)
        self._ip_evaluator = ip_evaluator or IPUpsideEvaluator(llm=self._llm, settings=self._settings)

    async def score_candidate(self, candidate: Candidate, criteria: SearchCriteria) -> ScoreResult:
        response = await self._llm.run_stage(
            LLMRequest(
                stage=LLMStage.candidate_scoring,
                prompt=build_scoring_prompt(candidate, criteria),
                max_tokens=2000,
                timeout_seconds=self._settings.llm_timeout_seconds,
            )
        )
        return parse_score_response(response.text, criteria)

    async def score_all(self, candidates: List[Candidate], criteria: SearchCriteria) -> List[Candidate]:
        scored: List[Candidate] = []
        for candidate in candidates:
            try:
                result = await self.score_candidate(candidate, criteria)
            except Exception as exc:
                logger.error("Failed to score %s, skipping: %s", candidate.name, exc)
                continue
            candidate.score = result.score
            candidate.confidence = result.confidence
            candidate.reasoning = result.reasoning
            candidate.estimated_revenue = result.estimated_revenue
            candidate.industry = result.industry
            candidate.geographic_focus = result.geographic_focus
            candidate.industry_match = result.industry_match
            candidate.ownership_type = result.ownership_type
            candidate.ownership_notes = result.ownership_notes
            scored.append(candidate)
            logger.info("Scored %s: %d/10 (%s)", candidate.name, result.score, result.confidence)
        return scored

    async def apply_filters(self, scored: List[Candidate]) -> List[Candidate]:
        floor = self._settings.revenue_floor_usd
        ceiling = self._settings.revenue_ceiling_usd
        kept: List[Candidate] = []
        for candidate in scored:
            if candidate.score < self._settings.scoring_min_score:
                continue
            revenue = parse_revenue(candidate.estimated_revenue)
            if revenue > ceiling:
                logger.info("Filtered out %s: revenue too high (%s)", candidate.name, format_millions(revenue))
                continue
            if 0 < revenue < floor:
                if await self._ip_evaluator.has_ip_upside(candidate.name):
                    candidate.ip_upside = True
                    candidate.score += 1
                    logger.info("IP upside detected for %s, score boosted to %d", candidate.name, candidate.score)
            kept.append(candidate)
        logger.info("%d of %d companies passed filters", len(kept), len(scored))
        return kept

    async def score_and_filter(self, candidates: List[Candidate], criteria: SearchCriteria) -> List[Candidate]:
        scored = await self.score_all(candidates, criteria)
        return await self.apply_filters(scored)
