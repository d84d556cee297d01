from datetime import datetime
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dealscout.config import Settings
from dealscout.models import ApprovalStatus, Base, ResearchStatus, WorkflowStatus
from dealscout.services.llm.types import LLMRequest, LLMResponse


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "database_url": "sqlite+aiosqlite://",
        "anthropic_api_key": "test-anthropic",
        "exa_api_key": "test-exa",
        "apollo_api_key": "",
        "llm_retry_backoff_seconds": 0,
        "search_cache_ttl_seconds": 0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


class FakeLLM:
    """Scripted stand-in for LLMOrchestrator.

    ``responses`` is either a list consumed in order or a callable that maps
    the request to a reply. A reply that is an exception gets raised.
    """

    def __init__(self, responses: Union[List[Any], Callable[[LLMRequest], Any]]):
        self._responses = responses
        self.requests: List[LLMRequest] = []

    async def run_stage(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        if callable(self._responses):
            reply = self._responses(request)
        else:
            reply = self._responses.pop(0) if self._responses else ""
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(text=str(reply), provider="fake", model="fake-model")


class FakeStorage:
    """In-memory Storage with the same coroutine surface the pipeline uses."""

    def __init__(self):
        self.configs: Dict[int, SimpleNamespace] = {}
        self.workflows: Dict[int, SimpleNamespace] = {}
        self.queue: Dict[int, SimpleNamespace] = {}
        self.reports: Dict[int, SimpleNamespace] = {}
        self.workflow_updates: List[Dict[str, Any]] = []
        self._ids = {"config": 0, "workflow": 0, "queue": 0, "report": 0}

    def _next(self, kind: str) -> int:
        self._ids[kind] += 1
        return self._ids[kind]

    def add_config(self, **fields: Any) -> SimpleNamespace:
        row = SimpleNamespace(
            id=self._next("config"),
            name=fields.pop("name", "Config"),
            search_criteria=fields.pop("search_criteria", {"query": "software"}),
            auto_approval_rules=fields.pop("auto_approval_rules", {"minScore": 6, "requiredConfidence": "Medium"}),
            schedule=fields.pop("schedule", None),
            is_active=fields.pop("is_active", True),
            last_run_at=None,
            **fields,
        )
        self.configs[row.id] = row
        return row

    async def get_config(self, config_id: int):
        return self.configs.get(config_id)

    async def update_config(self, config_id: int, **fields: Any):
        row = self.configs.get(config_id)
        if row is not None:
            for key, value in fields.items():
                setattr(row, key, value)
        return row

    async def list_active_configs(self):
        return [c for c in self.configs.values() if c.is_active]

    async def create_workflow(self, **fields: Any):
        row = SimpleNamespace(
            id=self._next("workflow"),
            config_id=None,
            completed_at=None,
            companies_found=0,
            companies_scored=0,
            companies_auto_approved=0,
            companies_manual_review=0,
            companies_researched=0,
            created_at=datetime.utcnow(),
        )
        for key, value in fields.items():
            setattr(row, key, value)
        self.workflows[row.id] = row
        return row

    async def update_workflow(self, workflow_id: int, **fields: Any):
        self.workflow_updates.append(dict(fields))
        row = self.workflows[workflow_id]
        for key, value in fields.items():
            setattr(row, key, value)
        return row

    async def finish_workflow(self, workflow_id: int, status, **fields: Any) -> bool:
        row = self.workflows[workflow_id]
        if row.status != WorkflowStatus.running:
            return False
        await self.update_workflow(workflow_id, status=status, completed_at=datetime.utcnow(), **fields)
        return True

    async def get_workflow(self, workflow_id: int):
        return self.workflows.get(workflow_id)

    async def fail_orphaned_workflows(self) -> int:
        count = 0
        for row in self.workflows.values():
            if row.status == WorkflowStatus.running:
                row.status = WorkflowStatus.failed
                row.completed_at = datetime.utcnow()
                count += 1
        return count

    async def find_existing_company(self, name: str, url: Optional[str] = None):
        for row in self.queue.values():
            if row.company_name.lower() == name.lower() or (url and row.website_url == url):
                return row
        return None

    async def add_to_discovery_queue(self, **fields: Any):
        row = SimpleNamespace(
            id=self._next("queue"),
            description="",
            agent_score=0,
            scoring_reason="",
            confidence="Low",
            estimated_revenue="",
            industry="",
            geographic_focus="",
            ownership_type="Unknown",
            research_status=ResearchStatus.pending,
            approval_status=ApprovalStatus.pending,
            auto_approval_reason=None,
            approved_at=None,
            report_id=None,
            ip_upside=False,
            created_at=datetime.utcnow(),
        )
        for key, value in fields.items():
            setattr(row, key, value)
        self.queue[row.id] = row
        return row

    async def update_queue_item(self, queue_id: int, **fields: Any):
        row = self.queue.get(queue_id)
        if row is not None:
            for key, value in fields.items():
                setattr(row, key, value)
        return row

    async def get_queue_item(self, queue_id: int):
        return self.queue.get(queue_id)

    async def save_research_report(self, queue_id: Optional[int], **fields: Any):
        row = SimpleNamespace(id=self._next("report"), **fields)
        self.reports[row.id] = row
        if queue_id is not None and queue_id in self.queue:
            self.queue[queue_id].research_status = ResearchStatus.completed
            self.queue[queue_id].report_id = row.id
        return row


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()
