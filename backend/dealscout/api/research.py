"""Direct research - skip discovery and research named companies."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List

from dealscout.api.deps import TaskDispatcher, get_dispatcher
from dealscout.services.types import Strategy

router = APIRouter()


class DirectCompany(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    website_url: str = Field(default="", alias="websiteUrl")


class DirectResearchRequest(BaseModel):
    companies: List[DirectCompany] = Field(min_length=1)
    strategy: Strategy = Strategy.buy_side


class DirectResearchResponse(BaseModel):
    message: str
    companies: int
    task_id: Optional[str] = None


@router.post("/direct", response_model=DirectResearchResponse, status_code=202)
async def start_direct_research(
    data: DirectResearchRequest,
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
):
    companies = [c.model_dump(by_alias=True) for c in data.companies]
    task_id = dispatcher.direct_research(companies, data.strategy.value)
    return DirectResearchResponse(
        message="Direct research started",
        companies=len(companies),
        task_id=task_id,
    )
