"""Workflow model - one discovery-to-research run and its progress counters."""
from sqlalchemy import Column, Integer, DateTime, JSON, ForeignKey, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from dealscout.models.base import Base


class WorkflowStatus(enum.Enum):
    running = "running"
    completed = "completed"
    failed = "failed"


class TriggerType(enum.Enum):
    scheduled = "scheduled"
    direct = "direct"
    manual = "manual"


class Workflow(Base):
    __tablename__ = "agent_workflows"

    id = Column(Integer, primary_key=True, index=True)
    config_id = Column(Integer, ForeignKey("agent_configs.id", ondelete="SET NULL"), nullable=True)

    status = Column(Enum(WorkflowStatus), nullable=False, default=WorkflowStatus.running)
    trigger_type = Column(Enum(TriggerType), nullable=False)
    search_criteria = Column(JSON, nullable=False)  # snapshot at start

    # Counters only ever grow during a run
    companies_found = Column(Integer, default=0)
    companies_scored = Column(Integer, default=0)
    companies_auto_approved = Column(Integer, default=0)
    companies_manual_review = Column(Integer, default=0)
    companies_researched = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    queue_items = relationship("DiscoveryQueueItem", back_populates="workflow")
