"""Agent configuration - reusable search criteria + approval rules + schedule."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Boolean
from datetime import datetime

from dealscout.models.base import Base


class AgentConfiguration(Base):
    __tablename__ = "agent_configs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)

    search_criteria = Column(JSON, nullable=False)  # SearchCriteria as dict
    auto_approval_rules = Column(JSON, nullable=False)  # AutoApprovalRules as dict

    schedule = Column(String(100), nullable=True)  # 5-field cron expression
    is_active = Column(Boolean, default=True)

    last_run_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
