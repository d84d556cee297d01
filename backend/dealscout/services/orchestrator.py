from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import async_sessionmaker

from dealscout.config import Settings, get_settings
from dealscout.models import ApprovalStatus, ResearchStatus, TriggerType, WorkflowStatus
from dealscout.services.approval import AutoApprovalGate
from dealscout.services.discovery import CandidateDiscovery
from dealscout.services.llm.orchestrator import LLMOrchestrator
from dealscout.services.research import ReportGenerator
from dealscout.services.scoring import CandidateScorer
from dealscout.services.storage import Storage
from dealscout.services.types import AutoApprovalRules, Candidate, SearchCriteria, Strategy

logger = logging.getLogger(__name__)

DIRECT_RESEARCH_REASON = "Direct research request"


class ConfigurationNotFoundError(LookupError):
    pass


class QueueItemNotFoundError(LookupError):
    pass


class InvalidTransitionError(RuntimeError):
    pass


def candidate_from_queue_item(item) -> Candidate:
    return Candidate(
        name=item.company_name,
        url=item.website_url or "",
        text=item.description or "",
        score=item.agent_score or 0,
        confidence=item.confidence or "Low",
        reasoning=item.scoring_reason or "",
        estimated_revenue=item.estimated_revenue or "",
        industry=item.industry or "",
        geographic_focus=item.geographic_focus or "",
        ownership_type=item.ownership_type or "Unknown",
        ip_upside=bool(item.ip_upside),
        queue_id=item.id,
    )


def _strategy_of(criteria: Optional[Dict[str, Any]]) -> str:
    value = (criteria or {}).get("strategy") or Strategy.buy_side.value
    return str(value)


class WorkflowOrchestrator:
    """Runs discovery, scoring, approval and research for one workflow at a time."""

    def __init__(
        self,
        storage: Storage,
        discovery: CandidateDiscovery,
        scorer: CandidateScorer,
        gate: AutoApprovalGate,
        reports: ReportGenerator,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.storage = storage
        self.discovery = discovery
        self.scorer = scorer
        self.gate = gate
        self.reports = reports

    async def run_discovery_workflow(self, config_id: int, trigger_type: str = TriggerType.scheduled.value) -> int:
        config = await self.storage.get_config(config_id)
        if config is None:
            raise ConfigurationNotFoundError(f"Config {config_id} not found")

        criteria = SearchCriteria.model_validate(config.search_criteria)
        rules = AutoApprovalRules.model_validate(config.auto_approval_rules or {})
        strategy = str(criteria.strategy)

        workflow = await self.storage.create_workflow(
            config_id=config.id,
            status=WorkflowStatus.running,
            trigger_type=TriggerType(trigger_type),
            search_criteria=config.search_criteria,
        )
        logger.info("Workflow %s started for config %s (%s)", workflow.id, config_id, trigger_type)

        try:
            await self.storage.update_config(config.id, last_run_at=datetime.utcnow())
            candidates = await self.discovery.discover(criteria)
            await self.storage.update_workflow(workflow.id, companies_found=len(candidates))

            scored = await self.scorer.score_and_filter(candidates, criteria)
            await self.storage.update_workflow(workflow.id, companies_scored=len(scored))

            approved, needs_review = await self.gate.apply(scored, rules, workflow.id, strategy)
            await self.storage.update_workflow(
                workflow.id,
                companies_auto_approved=len(approved),
                companies_manual_review=len(needs_review),
            )

            researched = await self.research_in_batches(approved, workflow.id, strategy)
            await self._finish(workflow.id, WorkflowStatus.completed, companies_researched=researched)
        except Exception:
            logger.exception("Workflow %s failed", workflow.id)
            await self._finish(workflow.id, WorkflowStatus.failed)
            raise

        logger.info(
            "Workflow %s complete: %d researched, %d need review",
            workflow.id, researched, len(needs_review),
        )
        return workflow.id

    async def _finish(self, workflow_id: int, status: WorkflowStatus, **fields: Any) -> bool:
        finished = await self.storage.finish_workflow(workflow_id, status, **fields)
        if not finished:
            logger.warning(
                "Workflow %s was no longer running; leaving its terminal status as is (wanted %s)",
                workflow_id, status.value,
            )
        return finished

    async def research_in_batches(self, candidates: Sequence[Candidate], workflow_id: int, strategy: str) -> int:
        batch_size = max(1, int(self._settings.research_batch_size))
        total_batches = (len(candidates) + batch_size - 1) // batch_size
        researched = 0
        for start in range(0, len(candidates), batch_size):
            batch = list(candidates[start : start + batch_size])
            logger.info(
                "Research batch %d/%d: %s",
                start // batch_size + 1, total_batches, ", ".join(c.name for c in batch),
            )
            results = await asyncio.gather(
                *(self.research_candidate(c, workflow_id, strategy) for c in batch),
                return_exceptions=True,
            )
            for candidate, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.error("Research failed for %s: %s", candidate.name, result)
                else:
                    researched += 1
            await self.storage.update_workflow(workflow_id, companies_researched=researched)
        return researched

    async def research_candidate(self, candidate: Candidate, workflow_id: int, strategy: str) -> int:
        """Research one approved candidate and return the stored report id."""
        logger.info(
            "Research pipeline start: %s (queue=%s, workflow=%s, strategy=%s)",
            candidate.name, candidate.queue_id, workflow_id, strategy,
        )
        try:
            if candidate.queue_id is not None:
                await self.storage.update_queue_item(candidate.queue_id, research_status=ResearchStatus.in_progress)
            record = await self.reports.build_report_record(candidate)
            report = await self.storage.save_research_report(candidate.queue_id, **record)
        except Exception:
            logger.exception("Research pipeline failed for %s", candidate.name)
            if candidate.queue_id is not None:
                await self.storage.update_queue_item(candidate.queue_id, research_status=ResearchStatus.failed)
            raise
        logger.info("Research complete: %s (report %s)", candidate.name, report.id)
        return report.id

    async def research_queue_item(self, queue_id: int) -> int:
        item = await self.storage.get_queue_item(queue_id)
        if item is None:
            raise QueueItemNotFoundError(f"Queue item {queue_id} not found")
        workflow = await self.storage.get_workflow(item.workflow_id)
        strategy = _strategy_of(workflow.search_criteria if workflow is not None else None)
        return await self.research_candidate(candidate_from_queue_item(item), item.workflow_id, strategy)

    async def run_direct_research(self, companies: List[Dict[str, str]], strategy: str = Strategy.buy_side.value) -> int:
        """Research named companies without discovery or scoring."""
        names = ", ".join(str(c.get("name") or "") for c in companies)
        workflow = await self.storage.create_workflow(
            status=WorkflowStatus.running,
            trigger_type=TriggerType.direct,
            search_criteria={"query": names, "strategy": strategy},
            companies_found=len(companies),
        )
        try:
            candidates: List[Candidate] = []
            for company in companies:
                candidate = Candidate(name=str(company.get("name") or "").strip(), url=str(company.get("websiteUrl") or ""))
                item = await self.storage.add_to_discovery_queue(
                    workflow_id=workflow.id,
                    approval_status=ApprovalStatus.manual_approved,
                    auto_approval_reason=DIRECT_RESEARCH_REASON,
                    approved_at=datetime.utcnow(),
                    **candidate.queue_fields(),
                )
                candidate.queue_id = item.id
                candidates.append(candidate)

            researched = await self.research_in_batches(candidates, workflow.id, strategy)
            await self._finish(workflow.id, WorkflowStatus.completed, companies_researched=researched)
        except Exception:
            logger.exception("Direct research workflow %s failed", workflow.id)
            await self._finish(workflow.id, WorkflowStatus.failed)
            raise
        return workflow.id

    async def _transition(self, queue_id: int, **fields: Any):
        item = await self.storage.get_queue_item(queue_id)
        if item is None:
            raise QueueItemNotFoundError(f"Queue item {queue_id} not found")
        if item.approval_status != ApprovalStatus.pending:
            raise InvalidTransitionError(
                f"Queue item {queue_id} is {item.approval_status.value}, only pending items can change"
            )
        return await self.storage.update_queue_item(queue_id, **fields)

    async def approve_queue_item(self, queue_id: int):
        return await self._transition(
            queue_id,
            approval_status=ApprovalStatus.manual_approved,
            approved_at=datetime.utcnow(),
        )

    async def reject_queue_item(self, queue_id: int):
        return await self._transition(queue_id, approval_status=ApprovalStatus.rejected)


def build_orchestrator(settings: Optional[Settings] = None, session_maker: Optional[async_sessionmaker] = None) -> WorkflowOrchestrator:
    settings = settings or get_settings()
    if session_maker is None:
        from dealscout.models.base import async_session_maker

        session_maker = async_session_maker
    storage = Storage(session_maker)
    llm = LLMOrchestrator(settings)
    return WorkflowOrchestrator(
        storage=storage,
        discovery=CandidateDiscovery(storage, settings=settings),
        scorer=CandidateScorer(llm=llm, settings=settings),
        gate=AutoApprovalGate(storage, settings=settings),
        reports=ReportGenerator(llm=llm, settings=settings),
        settings=settings,
    )
