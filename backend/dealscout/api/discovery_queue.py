"""Review queue routes - pending candidates and approve/reject decisions."""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Optional, List

from dealscout.api.deps import TaskDispatcher, get_dispatcher, get_orchestrator, get_storage
from dealscout.api.workflows import QueueItemResponse
from dealscout.services.orchestrator import (
    InvalidTransitionError,
    QueueItemNotFoundError,
    WorkflowOrchestrator,
)
from dealscout.services.revenue import parse_revenue
from dealscout.services.storage import Storage

router = APIRouter()


class DecisionResponse(BaseModel):
    id: int
    message: str
    task_id: Optional[str] = None


class BulkDecisionRequest(BaseModel):
    ids: List[int] = Field(min_length=1)


class BulkDecisionResult(BaseModel):
    id: int
    ok: bool
    error: Optional[str] = None
    task_id: Optional[str] = None


class BulkDecisionResponse(BaseModel):
    processed: int
    results: List[BulkDecisionResult]


def _raise_for(exc: Exception):
    if isinstance(exc, QueueItemNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    raise HTTPException(status_code=409, detail=str(exc))


@router.get("/pending", response_model=List[QueueItemResponse])
async def list_pending(storage: Storage = Depends(get_storage)):
    """Pending candidates, best score first, larger estimated revenue breaking ties."""
    items = await storage.list_pending_queue_items()
    return sorted(
        items,
        key=lambda item: (item.agent_score or 0, parse_revenue(item.estimated_revenue)),
        reverse=True,
    )


@router.post("/bulk-approve", response_model=BulkDecisionResponse)
async def bulk_approve(
    data: BulkDecisionRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
):
    results: List[BulkDecisionResult] = []
    for queue_id in data.ids:
        try:
            await orchestrator.approve_queue_item(queue_id)
        except (QueueItemNotFoundError, InvalidTransitionError) as exc:
            results.append(BulkDecisionResult(id=queue_id, ok=False, error=str(exc)))
            continue
        results.append(BulkDecisionResult(id=queue_id, ok=True, task_id=dispatcher.research(queue_id)))
    return BulkDecisionResponse(processed=sum(1 for r in results if r.ok), results=results)


@router.post("/bulk-reject", response_model=BulkDecisionResponse)
async def bulk_reject(
    data: BulkDecisionRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    results: List[BulkDecisionResult] = []
    for queue_id in data.ids:
        try:
            await orchestrator.reject_queue_item(queue_id)
        except (QueueItemNotFoundError, InvalidTransitionError) as exc:
            results.append(BulkDecisionResult(id=queue_id, ok=False, error=str(exc)))
            continue
        results.append(BulkDecisionResult(id=queue_id, ok=True))
    return BulkDecisionResponse(processed=sum(1 for r in results if r.ok), results=results)


@router.post("/{queue_id}/approve", response_model=DecisionResponse)
async def approve_company(
    queue_id: int,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
):
    """Approve a pending candidate and queue its research."""
    try:
        await orchestrator.approve_queue_item(queue_id)
    except (QueueItemNotFoundError, InvalidTransitionError) as exc:
        _raise_for(exc)
    task_id = dispatcher.research(queue_id)
    return DecisionResponse(id=queue_id, message="Company approved, research started", task_id=task_id)


@router.post("/{queue_id}/reject", response_model=DecisionResponse)
async def reject_company(
    queue_id: int,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    try:
        await orchestrator.reject_queue_item(queue_id)
    except (QueueItemNotFoundError, InvalidTransitionError) as exc:
        _raise_for(exc)
    return DecisionResponse(id=queue_id, message="Company rejected")
