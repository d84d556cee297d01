import pytest
from conftest import make_settings

from dealscout.models import ApprovalStatus, ResearchStatus, TriggerType, WorkflowStatus
from dealscout.services.approval import AutoApprovalGate
from dealscout.services.orchestrator import (
    DIRECT_RESEARCH_REASON,
    ConfigurationNotFoundError,
    InvalidTransitionError,
    QueueItemNotFoundError,
    WorkflowOrchestrator,
)
from dealscout.services.research import ResearchError
from dealscout.services.storage import Storage
from dealscout.services.types import Candidate


class _FakeDiscovery:
    def __init__(self, candidates=None, error=None):
        self.candidates = candidates or []
        self.error = error

    async def discover(self, criteria):
        if self.error:
            raise self.error
        return list(self.candidates)


class _FakeScorer:
    """Keeps the first ``keep`` candidates and marks the first ``approve`` of them approvable."""

    def __init__(self, keep, approve):
        self.keep = keep
        self.approve = approve

    async def score_and_filter(self, candidates, criteria):
        kept = candidates[: self.keep]
        for index, candidate in enumerate(kept):
            candidate.score = 8 if index < self.approve else 4
            candidate.confidence = "High"
            candidate.estimated_revenue = "$30M"
        return kept


class _FakeReports:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.built = []

    async def build_report_record(self, candidate):
        if candidate.name in self.failing:
            raise ResearchError(f"Report too short for {candidate.name}")
        self.built.append(candidate.name)
        return {"company_name": candidate.name, "website_url": candidate.url, "report": f"# {candidate.name}", "status": "completed"}


def _orchestrator(storage, discovery=None, scorer=None, reports=None, **settings):
    cfg = make_settings(**settings)
    return WorkflowOrchestrator(
        storage=storage,
        discovery=discovery or _FakeDiscovery(),
        scorer=scorer or _FakeScorer(keep=0, approve=0),
        gate=AutoApprovalGate(storage, settings=cfg),
        reports=reports or _FakeReports(),
        settings=cfg,
    )


def _candidates(n):
    return [Candidate(name=f"Company {i}", url=f"https://c{i}.test") for i in range(n)]


async def test_missing_config_raises(fake_storage):
    with pytest.raises(ConfigurationNotFoundError):
        await _orchestrator(fake_storage).run_discovery_workflow(42)
    assert fake_storage.workflows == {}


async def test_workflow_counters_and_completion(fake_storage):
    config = fake_storage.add_config(search_criteria={"query": "robots", "strategy": "dual"})
    reports = _FakeReports(failing={"Company 2", "Company 4"})
    orchestrator = _orchestrator(
        fake_storage,
        discovery=_FakeDiscovery(_candidates(10)),
        scorer=_FakeScorer(keep=8, approve=5),
        reports=reports,
    )

    workflow_id = await orchestrator.run_discovery_workflow(config.id)

    workflow = fake_storage.workflows[workflow_id]
    assert workflow.status == WorkflowStatus.completed
    assert workflow.completed_at is not None
    assert workflow.trigger_type == TriggerType.scheduled
    assert workflow.search_criteria == {"query": "robots", "strategy": "dual"}
    assert (
        workflow.companies_found,
        workflow.companies_scored,
        workflow.companies_auto_approved,
        workflow.companies_manual_review,
        workflow.companies_researched,
    ) == (10, 8, 5, 3, 3)
    assert config.last_run_at is not None

    statuses = [u["status"] for u in fake_storage.workflow_updates if "status" in u]
    assert statuses == [WorkflowStatus.completed]
    researched_progress = [u["companies_researched"] for u in fake_storage.workflow_updates if "companies_researched" in u]
    assert researched_progress == [2, 3, 3]

    by_name = {row.company_name: row for row in fake_storage.queue.values()}
    assert by_name["Company 0"].research_status == ResearchStatus.completed
    assert by_name["Company 0"].report_id is not None
    assert by_name["Company 2"].research_status == ResearchStatus.failed
    assert by_name["Company 6"].research_status == ResearchStatus.pending
    assert by_name["Company 6"].approval_status == ApprovalStatus.pending


async def test_stage_failure_marks_workflow_failed(fake_storage):
    config = fake_storage.add_config()
    orchestrator = _orchestrator(fake_storage, discovery=_FakeDiscovery(error=RuntimeError("Exa API error (500)")))

    with pytest.raises(RuntimeError):
        await orchestrator.run_discovery_workflow(config.id, TriggerType.manual.value)

    workflow = list(fake_storage.workflows.values())[0]
    assert workflow.status == WorkflowStatus.failed
    assert workflow.completed_at is not None
    assert workflow.trigger_type == TriggerType.manual


async def test_empty_discovery_completes_with_zero_counts(fake_storage):
    config = fake_storage.add_config()
    workflow_id = await _orchestrator(fake_storage).run_discovery_workflow(config.id)

    workflow = fake_storage.workflows[workflow_id]
    assert workflow.status == WorkflowStatus.completed
    assert workflow.companies_found == 0
    assert workflow.companies_researched == 0


async def test_research_queue_item_uses_workflow_strategy(fake_storage):
    workflow = await fake_storage.create_workflow(
        status=WorkflowStatus.completed, trigger_type=TriggerType.scheduled, search_criteria={"query": "x", "strategy": "sell-side"}
    )
    item = await fake_storage.add_to_discovery_queue(
        workflow_id=workflow.id,
        company_name="Acme",
        website_url="https://acme.test",
        description="Robots",
        agent_score=5,
        confidence="Medium",
        industry="Robotics",
        approval_status=ApprovalStatus.manual_approved,
    )
    reports = _FakeReports()
    orchestrator = _orchestrator(fake_storage, reports=reports)

    report_id = await orchestrator.research_queue_item(item.id)

    assert reports.built == ["Acme"]
    assert fake_storage.queue[item.id].report_id == report_id
    assert fake_storage.queue[item.id].research_status == ResearchStatus.completed


async def test_research_queue_item_missing_raises(fake_storage):
    with pytest.raises(QueueItemNotFoundError):
        await _orchestrator(fake_storage).research_queue_item(7)


async def test_direct_research_creates_manual_approved_items(fake_storage):
    orchestrator = _orchestrator(fake_storage)
    workflow_id = await orchestrator.run_direct_research(
        [{"name": "Acme", "websiteUrl": "https://acme.test"}, {"name": "Bravo"}], "sell-side"
    )

    workflow = fake_storage.workflows[workflow_id]
    assert workflow.trigger_type == TriggerType.direct
    assert workflow.status == WorkflowStatus.completed
    assert workflow.companies_researched == 2
    items = list(fake_storage.queue.values())
    assert [i.company_name for i in items] == ["Acme", "Bravo"]
    assert all(i.approval_status == ApprovalStatus.manual_approved for i in items)
    assert all(i.auto_approval_reason == DIRECT_RESEARCH_REASON for i in items)
    assert all(i.agent_score == 0 for i in items)


async def test_only_pending_items_can_be_approved_or_rejected(fake_storage):
    orchestrator = _orchestrator(fake_storage)
    pending = await fake_storage.add_to_discovery_queue(workflow_id=1, company_name="A", website_url="")
    done = await fake_storage.add_to_discovery_queue(
        workflow_id=1, company_name="B", website_url="", approval_status=ApprovalStatus.auto_approved
    )

    approved = await orchestrator.approve_queue_item(pending.id)
    assert approved.approval_status == ApprovalStatus.manual_approved
    assert approved.approved_at is not None

    with pytest.raises(InvalidTransitionError):
        await orchestrator.reject_queue_item(pending.id)
    with pytest.raises(InvalidTransitionError):
        await orchestrator.approve_queue_item(done.id)
    with pytest.raises(QueueItemNotFoundError):
        await orchestrator.reject_queue_item(999)


class _SweepingDiscovery:
    """Discovery that lets orphan recovery run while the workflow is in flight."""

    def __init__(self, storage, error=None):
        self.storage = storage
        self.error = error

    async def discover(self, criteria):
        await self.storage.fail_orphaned_workflows()
        if self.error:
            raise self.error
        return []


async def test_recovered_workflow_is_not_marked_completed(session_maker):
    storage = Storage(session_maker)
    config = await storage.create_config(name="Robots", search_criteria={"query": "robots"}, auto_approval_rules={})
    orchestrator = _orchestrator(storage, discovery=_SweepingDiscovery(storage))

    workflow_id = await orchestrator.run_discovery_workflow(config.id)

    workflow = await storage.get_workflow(workflow_id)
    assert workflow.status == WorkflowStatus.failed
    assert workflow.companies_researched == 0


async def test_recovered_workflow_keeps_recovery_timestamp_on_failure(session_maker):
    storage = Storage(session_maker)
    config = await storage.create_config(name="Robots", search_criteria={"query": "robots"}, auto_approval_rules={})
    orchestrator = _orchestrator(storage, discovery=_SweepingDiscovery(storage, error=RuntimeError("search down")))

    with pytest.raises(RuntimeError):
        await orchestrator.run_discovery_workflow(config.id)

    workflow = (await storage.list_workflows())[0]
    recovered_at = workflow.completed_at
    assert workflow.status == WorkflowStatus.failed
    assert await storage.finish_workflow(workflow.id, WorkflowStatus.completed) is False
    assert (await storage.get_workflow(workflow.id)).completed_at == recovered_at


class _SweepingReports(_FakeReports):
    def __init__(self, storage):
        super().__init__()
        self.storage = storage

    async def build_report_record(self, candidate):
        await self.storage.fail_orphaned_workflows()
        return await super().build_report_record(candidate)


async def test_direct_research_respects_recovered_status(session_maker):
    storage = Storage(session_maker)
    orchestrator = _orchestrator(storage, reports=_SweepingReports(storage))

    workflow_id = await orchestrator.run_direct_research([{"name": "Acme"}], "buy-side")

    workflow = await storage.get_workflow(workflow_id)
    assert workflow.status == WorkflowStatus.failed
    assert workflow.companies_researched == 1
    items = await storage.list_queue_items_for_workflow(workflow_id)
    assert items[0].research_status == ResearchStatus.completed
