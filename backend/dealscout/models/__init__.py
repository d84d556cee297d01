from dealscout.models.base import Base
from dealscout.models.agent_config import AgentConfiguration
from dealscout.models.workflow import Workflow, WorkflowStatus, TriggerType
from dealscout.models.discovery_queue import DiscoveryQueueItem, ApprovalStatus, ResearchStatus
from dealscout.models.report import Report

__all__ = [
    "Base",
    "AgentConfiguration",
    "Workflow", "WorkflowStatus", "TriggerType",
    "DiscoveryQueueItem", "ApprovalStatus", "ResearchStatus",
    "Report",
]
