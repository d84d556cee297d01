import httpx
import pytest
from conftest import make_settings

from dealscout.api.deps import get_dispatcher, get_session_maker
from dealscout.config import get_settings
from dealscout.main import app
from dealscout.models import ApprovalStatus, TriggerType, WorkflowStatus
from dealscout.services.storage import Storage


class _RecordingDispatcher:
    def __init__(self):
        self.calls = []

    def run_discovery(self, config_id, trigger_type):
        self.calls.append(("run_discovery", config_id, trigger_type))
        return "task-discovery"

    def research(self, queue_id):
        self.calls.append(("research", queue_id))
        return f"task-research-{queue_id}"

    def direct_research(self, companies, strategy):
        self.calls.append(("direct_research", companies, strategy))
        return "task-direct"


@pytest.fixture
def dispatcher():
    return _RecordingDispatcher()


@pytest.fixture
async def client(session_maker, dispatcher):
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_settings] = lambda: make_settings()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _queue(storage, workflow_id, name, score, revenue="", status=ApprovalStatus.pending):
    return await storage.add_to_discovery_queue(
        workflow_id=workflow_id,
        company_name=name,
        website_url=f"https://{name.lower()}.test",
        agent_score=score,
        estimated_revenue=revenue,
        approval_status=status,
    )


async def _workflow(storage):
    return await storage.create_workflow(
        status=WorkflowStatus.completed,
        trigger_type=TriggerType.scheduled,
        search_criteria={"query": "robots", "strategy": "buy-side"},
    )


async def test_agent_config_crud_and_run(client, dispatcher):
    created = await client.post(
        "/api/agent-configs",
        json={
            "name": "Robotics",
            "search_criteria": {"query": "robotics", "revenueRange": "$10M-$50M", "strategy": "dual"},
            "auto_approval_rules": {"minScore": 7},
            "schedule": "0 9 * * 1",
        },
    )
    assert created.status_code == 200
    body = created.json()
    assert body["search_criteria"] == {"query": "robotics", "revenueRange": "$10M-$50M", "strategy": "dual"}
    assert body["auto_approval_rules"]["minScore"] == 7
    assert body["auto_approval_rules"]["requiredConfidence"] == "Medium"
    config_id = body["id"]

    updated = await client.put(f"/api/agent-configs/{config_id}", json={"is_active": False})
    assert updated.json()["is_active"] is False
    assert updated.json()["name"] == "Robotics"

    listed = await client.get("/api/agent-configs")
    assert [c["id"] for c in listed.json()] == [config_id]

    run = await client.post(f"/api/agent-configs/{config_id}/run")
    assert run.status_code == 200
    assert run.json()["task_id"] == "task-discovery"
    assert dispatcher.calls == [("run_discovery", config_id, "manual")]

    assert (await client.delete(f"/api/agent-configs/{config_id}")).json() == {"success": True}
    assert (await client.get(f"/api/agent-configs/{config_id}")).status_code == 404
    assert (await client.delete(f"/api/agent-configs/{config_id}")).status_code == 404
    assert (await client.post(f"/api/agent-configs/{config_id}/run")).status_code == 404


async def test_create_config_rejects_invalid_criteria(client):
    response = await client.post(
        "/api/agent-configs",
        json={"name": "Bad", "search_criteria": {"query": "x", "strategy": "hold"}},
    )
    assert response.status_code == 422


async def test_pending_queue_sorted_by_score_then_revenue(client, session_maker):
    storage = Storage(session_maker)
    workflow = await _workflow(storage)
    await _queue(storage, workflow.id, "Small", 7, "$12M")
    await _queue(storage, workflow.id, "Top", 9, "$20M")
    await _queue(storage, workflow.id, "Bigger", 7, "$80M")
    await _queue(storage, workflow.id, "Done", 10, "$90M", status=ApprovalStatus.auto_approved)

    response = await client.get("/api/discovery-queue/pending")

    assert response.status_code == 200
    assert [i["company_name"] for i in response.json()] == ["Top", "Bigger", "Small"]
    assert response.json()[0]["approval_status"] == "pending"


async def test_approve_dispatches_research_and_rejects_second_decision(client, session_maker, dispatcher):
    storage = Storage(session_maker)
    workflow = await _workflow(storage)
    item = await _queue(storage, workflow.id, "Acme", 6)

    approved = await client.post(f"/api/discovery-queue/{item.id}/approve")
    assert approved.status_code == 200
    assert approved.json()["task_id"] == f"task-research-{item.id}"
    assert dispatcher.calls == [("research", item.id)]
    assert (await storage.get_queue_item(item.id)).approval_status == ApprovalStatus.manual_approved

    assert (await client.post(f"/api/discovery-queue/{item.id}/reject")).status_code == 409
    assert (await client.post("/api/discovery-queue/999/approve")).status_code == 404


async def test_bulk_decisions_report_per_item_results(client, session_maker, dispatcher):
    storage = Storage(session_maker)
    workflow = await _workflow(storage)
    first = await _queue(storage, workflow.id, "First", 6)
    second = await _queue(storage, workflow.id, "Second", 5)
    third = await _queue(storage, workflow.id, "Third", 4)

    approved = await client.post("/api/discovery-queue/bulk-approve", json={"ids": [first.id, 999]})
    assert approved.json()["processed"] == 1
    results = approved.json()["results"]
    assert results[0] == {"id": first.id, "ok": True, "error": None, "task_id": f"task-research-{first.id}"}
    assert results[1]["ok"] is False

    rejected = await client.post("/api/discovery-queue/bulk-reject", json={"ids": [second.id, third.id, first.id]})
    assert rejected.json()["processed"] == 2
    assert [r["ok"] for r in rejected.json()["results"]] == [True, True, False]
    assert (await storage.get_queue_item(third.id)).approval_status == ApprovalStatus.rejected

    assert (await client.post("/api/discovery-queue/bulk-reject", json={"ids": []})).status_code == 422


async def test_workflow_history_and_companies(client, session_maker):
    storage = Storage(session_maker)
    workflow = await _workflow(storage)
    await _queue(storage, workflow.id, "Acme", 6)

    listed = await client.get("/api/workflows")
    assert listed.json()[0]["status"] == "completed"
    assert listed.json()[0]["trigger_type"] == "scheduled"

    companies = await client.get(f"/api/workflows/{workflow.id}/companies")
    assert [c["company_name"] for c in companies.json()] == ["Acme"]
    assert (await client.get("/api/workflows/999")).status_code == 404
    assert (await client.get("/api/workflows/999/companies")).status_code == 404


async def test_reports_list_completed_with_snippets(client, session_maker):
    storage = Storage(session_maker)
    text = (
        "# Acme\n\n## 1. Executive Summary\nAcme makes robots.\n\n"
        "## 2. Strategic Assessment\nBuy-side target with strong fit.\nConfidence: High\n"
    )
    done = await storage.save_research_report(None, company_name="Acme", report=text, status="completed")
    await storage.save_research_report(None, company_name="Draft", report="# Draft", status="failed")

    listed = await client.get("/api/reports")
    assert [r["company_name"] for r in listed.json()] == ["Acme"]
    summary = listed.json()[0]
    assert summary["executive_summary"].startswith("Acme makes robots.")
    assert summary["recommendation"] == "Buy-side target with strong fit."
    assert summary["confidence"] == "High"
    assert "report" not in summary

    detail = await client.get(f"/api/reports/{done.id}")
    assert detail.json()["report"] == text
    assert (await client.get("/api/reports/999")).status_code == 404


async def test_direct_research_is_accepted(client, dispatcher):
    response = await client.post(
        "/api/research/direct",
        json={"companies": [{"name": "Acme", "websiteUrl": "https://acme.test"}], "strategy": "sell-side"},
    )
    assert response.status_code == 202
    assert response.json() == {"message": "Direct research started", "companies": 1, "task_id": "task-direct"}
    assert dispatcher.calls == [
        ("direct_research", [{"name": "Acme", "websiteUrl": "https://acme.test"}], "sell-side")
    ]

    assert (await client.post("/api/research/direct", json={"companies": []})).status_code == 422


async def test_health_ok(client):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_health_reports_missing_credentials(client):
    app.dependency_overrides[get_settings] = lambda: make_settings(exa_api_key="")
    response = await client.get("/api/health")
    assert response.status_code == 503
    assert response.json()["checks"] == ["missing EXA_API_KEY"]
