"""Value types passed between pipeline stages."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Strategy(str, Enum):
    buy_side = "buy-side"
    sell_side = "sell-side"
    dual = "dual"


class Confidence(str, Enum):
    high = "High"
    medium = "Medium"
    low = "Low"


class OwnershipType(str, Enum):
    founder_led = "Founder-Led"
    pe_backed = "PE-Backed"
    family_owned = "Family-Owned"
    unknown = "Unknown"


CONFIDENCE_LEVELS: Dict[str, int] = {"Low": 1, "Medium": 2, "High": 3}


def normalize_confidence(value: Any) -> str:
    """Map a model-supplied label onto High, Medium or Low. Anything unrecognized is Low."""
    label = str(value or "").strip().title()
    return label if label in CONFIDENCE_LEVELS else Confidence.low.value


def confidence_level(value: Optional[str]) -> int:
    return CONFIDENCE_LEVELS.get(str(value or ""), 1)


class SearchCriteria(BaseModel):
    """Structured discovery input. Stored as JSON on configs and workflow snapshots."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, use_enum_values=True, validate_default=True)

    query: str
    industry: Optional[str] = None
    revenue_range: Optional[str] = Field(default=None, alias="revenueRange")
    geographic_focus: Optional[str] = Field(default=None, alias="geographicFocus")
    strategy: Strategy = Strategy.buy_side
    max_results: Optional[int] = Field(default=None, alias="maxResults", ge=1, le=100)


class AutoApprovalRules(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, use_enum_values=True, validate_default=True)

    min_score: int = Field(default=6, alias="minScore", ge=1, le=10)
    required_confidence: Confidence = Field(default=Confidence.medium, alias="requiredConfidence")
    required_industries: List[str] = Field(default_factory=list, alias="requiredIndustries")
    required_revenue_range: Optional[str] = Field(default=None, alias="requiredRevenueRange")


@dataclass
class Candidate:
    """A discovered company. Scoring fills in the assessment fields."""

    name: str
    url: str
    text: str = ""
    score: int = 0
    confidence: str = Confidence.low.value
    reasoning: str = ""
    estimated_revenue: str = ""
    industry: str = ""
    geographic_focus: str = ""
    industry_match: bool = False
    ownership_type: str = OwnershipType.unknown.value
    ownership_notes: str = ""
    ip_upside: bool = False
    queue_id: Optional[int] = None

    def queue_fields(self) -> Dict[str, Any]:
        return {
            "company_name": self.name,
            "website_url": self.url,
            "description": self.text,
            "agent_score": self.score,
            "scoring_reason": self.reasoning,
            "confidence": self.confidence,
            "estimated_revenue": self.estimated_revenue,
            "industry": self.industry,
            "geographic_focus": self.geographic_focus,
            "ownership_type": self.ownership_type,
            "ip_upside": self.ip_upside,
        }


@dataclass
class DecisionMaker:
    name: str
    title: str
    company: str = ""
    linkedin_url: Optional[str] = None


@dataclass
class EnrichedContact:
    name: str
    title: str
    company: str = ""
    linkedin_url: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    verified: bool = False
    apollo_url: Optional[str] = None
