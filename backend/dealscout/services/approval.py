from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from dealscout.config import Settings, get_settings
from dealscout.models.discovery_queue import ApprovalStatus
from dealscout.services.revenue import format_millions, parse_revenue
from dealscout.services.types import (
    AutoApprovalRules,
    Candidate,
    OwnershipType,
    Strategy,
    confidence_level,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalThresholds:
    min_score: int
    confidence_floor: str
    revenue_floor: int
    revenue_ceiling: int

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        rules: Optional[AutoApprovalRules] = None,
    ) -> "ApprovalThresholds":
        settings = settings or get_settings()
        min_score = settings.approval_min_score
        confidence_floor = settings.approval_confidence_floor
        if settings.approval_use_configured_thresholds and rules is not None:
            min_score = rules.min_score
            confidence_floor = str(rules.required_confidence)
        return cls(
            min_score=min_score,
            confidence_floor=confidence_floor,
            revenue_floor=settings.revenue_floor_usd,
            revenue_ceiling=settings.revenue_ceiling_usd,
        )


@dataclass
class ApprovalDecision:
    approved: bool
    reason: str


def evaluate_auto_approval(
    candidate: Candidate,
    rules: Optional[AutoApprovalRules],
    strategy: str,
    thresholds: ApprovalThresholds,
) -> ApprovalDecision:
    """Decide auto-approval for one scored candidate.

    The first matching review reason is recorded, in this order: PE-backed on
    a buy-side mandate, sub-floor revenue with IP upside, revenue above the
    ceiling, low score, low confidence.
    """
    required_label = str(rules.required_confidence) if rules is not None else "Medium"
    pe_buy_side = (
        candidate.ownership_type == OwnershipType.pe_backed.value
        and str(strategy) == Strategy.buy_side.value
    )
    revenue = parse_revenue(candidate.estimated_revenue)
    below_floor_with_ip = revenue < thresholds.revenue_floor and bool(candidate.ip_upside)
    above_ceiling = revenue > thresholds.revenue_ceiling
    score_ok = candidate.score >= thresholds.min_score
    confidence_ok = confidence_level(candidate.confidence) >= confidence_level(thresholds.confidence_floor)

    if score_ok and confidence_ok and not pe_buy_side and not below_floor_with_ip and not above_ceiling:
        reason = f"Score {candidate.score}/10, {candidate.confidence} confidence"
        if candidate.ownership_type and candidate.ownership_type != OwnershipType.unknown.value:
            reason += f", {candidate.ownership_type}"
        return ApprovalDecision(approved=True, reason=reason)

    if pe_buy_side:
        reason = "PE-backed company - requires manual review for buy-side strategy (competitive auction risk)"
    elif below_floor_with_ip:
        reason = (
            f"Below revenue threshold ({format_millions(revenue, 1)}) "
            "but significant IP upside detected - manual review recommended"
        )
    elif above_ceiling:
        reason = f"Above revenue threshold ({format_millions(revenue, 0)}) - likely too large, requires manual review"
    elif not score_ok:
        reason = f"Score {candidate.score}/10 below threshold ({thresholds.min_score})"
    elif not confidence_ok:
        reason = f"Confidence {candidate.confidence} below required {required_label}"
    else:
        reason = f"Score {candidate.score}/10 or needs review"
    return ApprovalDecision(approved=False, reason=reason)


class AutoApprovalGate:
    def __init__(self, storage, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._storage = storage

    async def apply(
        self,
        candidates: List[Candidate],
        rules: Optional[AutoApprovalRules],
        workflow_id: int,
        strategy: str,
    ) -> Tuple[List[Candidate], List[Candidate]]:
        thresholds = ApprovalThresholds.from_settings(self._settings, rules)
        auto_approved: List[Candidate] = []
        needs_review: List[Candidate] = []

        for candidate in candidates:
            item = await self._storage.add_to_discovery_queue(
                workflow_id=workflow_id,
                approval_status=ApprovalStatus.pending,
                **candidate.queue_fields(),
            )
            candidate.queue_id = item.id

            decision = evaluate_auto_approval(candidate, rules, strategy, thresholds)
            if decision.approved:
                await self._storage.update_queue_item(
                    item.id,
                    approval_status=ApprovalStatus.auto_approved,
                    auto_approval_reason=decision.reason,
                    approved_at=datetime.utcnow(),
                )
                auto_approved.append(candidate)
                logger.info("Auto-approved %s (%d/10)", candidate.name, candidate.score)
            else:
                await self._storage.update_queue_item(
                    item.id,
                    approval_status=ApprovalStatus.pending,
                    auto_approval_reason=decision.reason,
                )
                needs_review.append(candidate)
                logger.info("Manual review: %s (%s)", candidate.name, decision.reason)

        logger.info(
            "Auto-approval summary: %d approved, %d need review (min score %d)",
            len(auto_approved), len(needs_review), thresholds.min_score,
        )
        return auto_approved, needs_review
