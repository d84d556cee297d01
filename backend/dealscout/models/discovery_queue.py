"""Discovery queue - one row per candidate, tracking approval and research."""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from dealscout.models.base import Base


class ApprovalStatus(enum.Enum):
    pending = "pending"
    auto_approved = "auto_approved"
    manual_approved = "manual_approved"
    rejected = "rejected"


class ResearchStatus(enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"


class DiscoveryQueueItem(Base):
    __tablename__ = "discovery_queue"

    id = Column(Integer, primary_key=True, index=True)
    workflow_id = Column(Integer, ForeignKey("agent_workflows.id"), nullable=False, index=True)

    # Identity mirrored from the candidate
    company_name = Column(String(500), nullable=False, index=True)
    website_url = Column(String(1000), nullable=False, default="")
    description = Column(Text, nullable=True)

    # Scoring
    agent_score = Column(Integer, nullable=False, default=0)
    scoring_reason = Column(Text, nullable=True)
    confidence = Column(String(20), nullable=True)
    estimated_revenue = Column(String(100), nullable=True)
    industry = Column(String(255), nullable=True)
    geographic_focus = Column(String(255), nullable=True)
    ownership_type = Column(String(50), nullable=True)
    ip_upside = Column(Boolean, default=False)

    # Approval
    approval_status = Column(Enum(ApprovalStatus), nullable=False, default=ApprovalStatus.pending)
    auto_approval_reason = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=True)

    # Research
    research_status = Column(Enum(ResearchStatus), nullable=False, default=ResearchStatus.pending)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=True, unique=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    workflow = relationship("Workflow", back_populates="queue_items")
    report = relationship("Report")
