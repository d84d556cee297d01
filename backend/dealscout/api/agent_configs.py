"""Agent configuration routes - CRUD plus on-demand runs."""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

from dealscout.api.deps import TaskDispatcher, get_dispatcher, get_storage
from dealscout.models import TriggerType
from dealscout.services.storage import Storage
from dealscout.services.types import AutoApprovalRules, SearchCriteria

router = APIRouter()


class AgentConfigCreate(BaseModel):
    name: str
    search_criteria: SearchCriteria
    auto_approval_rules: AutoApprovalRules = AutoApprovalRules()
    schedule: Optional[str] = None
    is_active: bool = True


class AgentConfigUpdate(BaseModel):
    name: Optional[str] = None
    search_criteria: Optional[SearchCriteria] = None
    auto_approval_rules: Optional[AutoApprovalRules] = None
    schedule: Optional[str] = None
    is_active: Optional[bool] = None


class AgentConfigResponse(BaseModel):
    id: int
    name: str
    search_criteria: Dict[str, Any]
    auto_approval_rules: Dict[str, Any]
    schedule: Optional[str] = None
    is_active: bool
    last_run_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RunResponse(BaseModel):
    message: str
    config_id: int
    task_id: Optional[str] = None


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True)


@router.get("", response_model=List[AgentConfigResponse])
async def list_agent_configs(storage: Storage = Depends(get_storage)):
    return await storage.list_configs()


@router.post("", response_model=AgentConfigResponse)
async def create_agent_config(data: AgentConfigCreate, storage: Storage = Depends(get_storage)):
    return await storage.create_config(
        name=data.name,
        search_criteria=_dump(data.search_criteria),
        auto_approval_rules=_dump(data.auto_approval_rules),
        schedule=data.schedule,
        is_active=data.is_active,
    )


@router.get("/{config_id}", response_model=AgentConfigResponse)
async def get_agent_config(config_id: int, storage: Storage = Depends(get_storage)):
    config = await storage.get_config(config_id)
    if config is None:
        raise HTTPException(status_code=404, detail="Config not found")
    return config


@router.put("/{config_id}", response_model=AgentConfigResponse)
async def update_agent_config(
    config_id: int,
    data: AgentConfigUpdate,
    storage: Storage = Depends(get_storage),
):
    fields: Dict[str, Any] = {}
    for key in ("name", "schedule", "is_active"):
        value = getattr(data, key)
        if value is not None:
            fields[key] = value
    if data.search_criteria is not None:
        fields["search_criteria"] = _dump(data.search_criteria)
    if data.auto_approval_rules is not None:
        fields["auto_approval_rules"] = _dump(data.auto_approval_rules)

    config = await storage.update_config(config_id, **fields)
    if config is None:
        raise HTTPException(status_code=404, detail="Config not found")
    return config


@router.delete("/{config_id}")
async def delete_agent_config(config_id: int, storage: Storage = Depends(get_storage)):
    if not await storage.delete_config(config_id):
        raise HTTPException(status_code=404, detail="Config not found")
    return {"success": True}


@router.post("/{config_id}/run", response_model=RunResponse)
async def run_agent_config(
    config_id: int,
    storage: Storage = Depends(get_storage),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
):
    """Start a discovery workflow now, outside the configured schedule."""
    if await storage.get_config(config_id) is None:
        raise HTTPException(status_code=404, detail="Config not found")
    task_id = dispatcher.run_discovery(config_id, TriggerType.manual.value)
    return RunResponse(message="Discovery workflow started", config_id=config_id, task_id=task_id)
