"""Workflow history routes."""
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

from dealscout.api.deps import get_storage
from dealscout.models import ApprovalStatus, ResearchStatus, TriggerType, WorkflowStatus
from dealscout.services.storage import Storage

router = APIRouter()


class WorkflowResponse(BaseModel):
    id: int
    config_id: Optional[int] = None
    status: WorkflowStatus
    trigger_type: TriggerType
    search_criteria: Dict[str, Any]
    companies_found: int = 0
    companies_scored: int = 0
    companies_auto_approved: int = 0
    companies_manual_review: int = 0
    companies_researched: int = 0
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QueueItemResponse(BaseModel):
    id: int
    workflow_id: int
    company_name: str
    website_url: Optional[str] = None
    description: Optional[str] = None
    agent_score: int = 0
    scoring_reason: Optional[str] = None
    confidence: Optional[str] = None
    estimated_revenue: Optional[str] = None
    industry: Optional[str] = None
    geographic_focus: Optional[str] = None
    ownership_type: Optional[str] = None
    ip_upside: Optional[bool] = False
    approval_status: ApprovalStatus
    auto_approval_reason: Optional[str] = None
    approved_at: Optional[datetime] = None
    research_status: ResearchStatus
    report_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=List[WorkflowResponse])
async def list_workflows(
    limit: int = Query(20, ge=1, le=100),
    storage: Storage = Depends(get_storage),
):
    return await storage.list_workflows(limit=limit)


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(workflow_id: int, storage: Storage = Depends(get_storage)):
    workflow = await storage.get_workflow(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return workflow


@router.get("/{workflow_id}/companies", response_model=List[QueueItemResponse])
async def list_workflow_companies(workflow_id: int, storage: Storage = Depends(get_storage)):
    if await storage.get_workflow(workflow_id) is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return await storage.list_queue_items_for_workflow(workflow_id)
