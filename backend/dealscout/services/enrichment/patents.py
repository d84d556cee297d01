"""Patent portfolio intelligence from the PatentsView API (no key required)."""
from __future__ import annotations

import json
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import httpx

from dealscout.config import Settings, get_settings
from dealscout.services.llm.orchestrator import LLMOrchestrator
from dealscout.services.llm.parsing import parse_json_object
from dealscout.services.llm.types import LLMRequest, LLMStage
from dealscout.services.revenue import format_millions

logger = logging.getLogger(__name__)

PATENT_FIELDS = [
    "patent_number",
    "patent_title",
    "patent_date",
    "app_date",
    "patent_abstract",
    "inventor_first_name",
    "inventor_last_name",
    "assignee_organization",
    "cited_patent_count",
]
UPSIDE_FIELDS = ["patent_number", "patent_title", "patent_date", "patent_abstract"]

_TECH_CATEGORIES: List[Tuple[str, re.Pattern]] = [
    ("Robotics & Automation", re.compile(r"robot|automation|mechanical")),
    ("Software & AI", re.compile(r"software|algorithm|computer|ai|machine learning")),
    ("Medical Devices", re.compile(r"medical|surgical|diagnostic|therapeutic")),
    ("Pharmaceuticals", re.compile(r"pharma|drug|compound|molecule")),
    ("Biotechnology", re.compile(r"biotech|genetic|protein|antibody")),
    ("Materials & Chemistry", re.compile(r"chemical|material|polymer")),
    ("Electronics", re.compile(r"electronic|circuit|semiconductor")),
    ("Telecommunications", re.compile(r"communication|network|wireless")),
    ("Energy", re.compile(r"energy|battery|solar|power")),
]

_VALUE_PER_PATENT = {"High": 1_500_000, "Medium": 800_000}
_DEFAULT_VALUE_PER_PATENT = 400_000


@dataclass
class Patent:
    patent_number: str
    title: str
    filing_date: str
    grant_date: str
    abstract: str
    inventors: List[str]
    assignee: str
    citations: int
    technology_area: str


@dataclass
class PatentIntelligence:
    total_patents: int = 0
    active_patents: List[Patent] = field(default_factory=list)
    key_inventors: List[Tuple[str, int]] = field(default_factory=list)
    technology_areas: List[Tuple[str, int]] = field(default_factory=list)
    innovation_score: str = "None"
    patent_valuation: str = "$0"
    oldest_patent: Optional[str] = None
    newest_patent: Optional[str] = None


def categorize_technology(title: str, abstract: str) -> str:
    text = f"{title} {abstract}".lower()
    for area, pattern in _TECH_CATEGORIES:
        if pattern.search(text):
            return area
    return "Other"


def innovation_score(patent_count: int) -> str:
    if patent_count <= 0:
        return "None"
    if patent_count >= 10:
        return "High"
    if patent_count >= 5:
        return "Medium"
    return "Low"


def estimate_valuation(patent_count: int, score: str) -> str:
    if patent_count <= 0:
        return "$0"
    base = patent_count * _VALUE_PER_PATENT.get(score, _DEFAULT_VALUE_PER_PATENT)
    return f"{format_millions(base * 0.7)}-{format_millions(base * 1.3)}"


def retention_risk(patent_count: int) -> str:
    if patent_count >= 5:
        return "CRITICAL"
    if patent_count >= 3:
        return "HIGH"
    return "MEDIUM"


def _inventor_names(item: Dict[str, Any]) -> List[str]:
    firsts = item.get("inventor_first_name")
    lasts = item.get("inventor_last_name")
    if not isinstance(firsts, list) or not isinstance(lasts, list):
        return []
    names = []
    for first, last in zip(firsts, lasts):
        name = f"{first or ''} {last or ''}".strip()
        if name:
            names.append(name)
    return names


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _parse_date(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _patent_query(company_name: str, fields: List[str], per_page: int) -> Dict[str, str]:
    return {
        "q": json.dumps({"_and": [{"assignee_organization": company_name}]}),
        "f": json.dumps(fields),
        "o": json.dumps({"per_page": per_page}),
    }


class PatentService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    async def fetch_raw_patents(self, company_name: str, fields: List[str], per_page: int) -> List[Dict[str, Any]]:
        async with httpx.AsyncClient(
            base_url=self._settings.patents_base_url,
            timeout=self._settings.http_timeout_seconds,
            transport=self._transport,
        ) as client:
            resp = await client.get("/patents/query", params=_patent_query(company_name, fields, per_page))
        if resp.status_code >= 400:
            logger.warning("PatentsView returned %s for %s", resp.status_code, company_name)
            return []
        patents = resp.json().get("patents") or []
        return [item for item in patents if isinstance(item, dict)]

    async def search_patents(self, company_name: str) -> List[Patent]:
        items = await self.fetch_raw_patents(company_name, PATENT_FIELDS, 100)
        return [
            Patent(
                patent_number=str(item.get("patent_number") or ""),
                title=str(item.get("patent_title") or ""),
                filing_date=str(item.get("app_date") or ""),
                grant_date=str(item.get("patent_date") or ""),
                abstract=str(item.get("patent_abstract") or ""),
                inventors=_inventor_names(item),
                assignee=str(item.get("assignee_organization") or company_name),
                citations=_as_int(item.get("cited_patent_count")),
                technology_area=categorize_technology(
                    str(item.get("patent_title") or ""), str(item.get("patent_abstract") or "")
                ),
            )
            for item in items
        ]

    async def get_company_patent_intelligence(self, company_name: str) -> PatentIntelligence:
        try:
            patents = await self.search_patents(company_name)
        except Exception as exc:
            logger.error("Error fetching patent data for %s: %s", company_name, exc)
            return PatentIntelligence()
        if not patents:
            return PatentIntelligence()

        inventors = Counter(name for patent in patents for name in patent.inventors if name.strip())
        areas = Counter(patent.technology_area for patent in patents)
        score = innovation_score(len(patents))
        dates = [d for d in (_parse_date(p.grant_date or p.filing_date) for p in patents) if d is not None]

        return PatentIntelligence(
            total_patents=len(patents),
            active_patents=patents[:20],
            key_inventors=inventors.most_common(5),
            technology_areas=areas.most_common(),
            innovation_score=score,
            patent_valuation=estimate_valuation(len(patents), score),
            oldest_patent=min(dates).isoformat() if dates else None,
            newest_patent=max(dates).isoformat() if dates else None,
        )

    def format_for_report(self, intel: PatentIntelligence, company_name: str) -> str:
        if intel.total_patents == 0:
            return (
                "## Patent & IP Intelligence (USPTO)\n\n"
                f'No patents found for "{company_name}" in USPTO database. This indicates:\n'
                "- No issued patents under this company name\n"
                "- May operate under different legal entity for IP\n"
                "- Technology may be trade-secret based rather than patented\n"
                "- Early stage company without patent filings yet\n"
                "- Acquired technology rather than internally developed\n\n"
                "**Innovation Score:** None\n\n"
                "**M&A Implications:**\n"
                "- No patent moat - technology may be replicable\n"
                "- Verify if operating under license from another entity\n"
                "- Check for trade secrets and know-how value\n"
                "- May rely on speed-to-market rather than IP protection"
            )

        lines = [
            "## Patent & IP Intelligence (USPTO)",
            "",
            f"**Innovation Score:** {intel.innovation_score}",
            f"**Total Active Patents:** {intel.total_patents}",
            f"**Estimated Patent Portfolio Value:** {intel.patent_valuation}",
        ]
        if intel.oldest_patent and intel.newest_patent:
            lines.append(f"**Patent Date Range:** {intel.oldest_patent} to {intel.newest_patent}")
        lines.append("")

        if intel.active_patents:
            lines += ["### Core Patent Portfolio", ""]
            for index, patent in enumerate(intel.active_patents[:5], start=1):
                if patent.citations > 10:
                    validation = "strong validation"
                elif patent.citations > 5:
                    validation = "moderate validation"
                else:
                    validation = "early stage"
                lines += [
                    f"**{index}. {patent.title}**",
                    f"- Patent #: {patent.patent_number}",
                    f"- Grant Date: {patent.grant_date}",
                    f"- Citations: {patent.citations} ({validation})",
                    f"- Technology: {patent.technology_area}",
                    "",
                ]
            if len(intel.active_patents) > 5:
                lines += [f"*...and {len(intel.active_patents) - 5} more patents*", ""]

        if intel.key_inventors:
            lines += ["### Key Inventors (Retention Risk Assessment)", ""]
            for name, count in intel.key_inventors:
                risk = retention_risk(count)
                if risk == "CRITICAL":
                    note = "Core technical talent - employment agreement essential"
                elif risk == "HIGH":
                    note = "Important technical contributor - retention bonus recommended"
                else:
                    note = "Contributing inventor - standard retention"
                lines += [f"**{name}** - {count} patents", f"- Retention Risk: {risk}", f"- {note}", ""]

        if intel.technology_areas:
            lines += ["### Technology Focus Areas", ""]
            for area, count in intel.technology_areas:
                share = round(count / intel.total_patents * 100)
                lines.append(f"- **{area}:** {count} patents ({share}%)")
            lines.append("")

        lines += ["### M&A Implications", ""]
        lines += self._implications(intel)
        return "\n".join(lines)

    @staticmethod
    def _implications(intel: PatentIntelligence) -> List[str]:
        if intel.innovation_score == "High":
            lead_name, lead_count = intel.key_inventors[0] if intel.key_inventors else ("Lead inventor", "multiple")
            return [
                "**STRONG IP MOAT**",
                f"- {intel.total_patents} patents create significant competitive barriers",
                f"- Patent portfolio valued at {intel.patent_valuation}",
                "- Technology protected for 20 years from filing date",
                "- Defensible market position",
                "",
                "**KEY PERSON DEPENDENCY**",
                f"- {lead_name} holds {lead_count} core patents",
                "- Need strong employment agreement with IP assignment clauses",
                "- Retention bonus recommended: 1-2% of purchase price",
                "- Non-compete and non-solicitation essential",
                "",
                "**VALUATION IMPACT**",
                f"- Patent portfolio adds {intel.patent_valuation} standalone value",
                "- Technology moat supports premium valuation",
                "- IP can be licensed separately if needed",
                "- Increases strategic buyer interest",
            ]
        if intel.innovation_score == "Medium":
            return [
                "**MODERATE IP PROTECTION**",
                f"- {intel.total_patents} patents provide some competitive advantage",
                f"- Patent portfolio valued at {intel.patent_valuation}",
                "- Sufficient for market differentiation",
                "- Room for additional patent development",
                "",
                "**INVENTOR RETENTION**",
                "- Key technical talent should be retained post-acquisition",
                "- Standard retention agreements recommended",
                "- Patents may have limited life remaining (check expiration dates)",
                "",
                "**OPPORTUNITY**",
                "- Expand patent portfolio post-acquisition",
                "- File additional applications in related areas",
                "- International patent filings if not already done",
            ]
        return [
            "**LIMITED IP PROTECTION**",
            f"- Only {intel.total_patents} patents - limited moat",
            "- May rely on trade secrets and know-how",
            "- Technology could be reverse-engineered",
            "- Speed-to-market is key competitive advantage",
            "",
            "**DUE DILIGENCE PRIORITIES**",
            "- Verify trade secret protection measures",
            "- Review employment agreements for IP assignment",
            "- Check for freedom-to-operate (no infringement of others' patents)",
            "- Assess technology roadmap and R&D pipeline",
            "",
            "**POST-ACQUISITION STRATEGY**",
            "- Invest in patent prosecution (file additional patents)",
            "- Protect key innovations before competitors",
            "- Budget $100K-$200K/year for IP development",
        ]


async def add_patent_intelligence(
    company_name: str,
    report: str,
    service: Optional[PatentService] = None,
) -> str:
    service = service or PatentService()
    intel = await service.get_company_patent_intelligence(company_name)
    return f"{report}\n\n{service.format_for_report(intel, company_name)}"


def build_ip_upside_prompt(company_name: str, patents: List[Dict[str, Any]]) -> str:
    summary = "\n".join(
        f"- {p.get('patent_title') or ''} ({p.get('patent_date') or ''}): {str(p.get('patent_abstract') or '')[:200]}"
        for p in patents[:5]
    )
    return f"""Evaluate if this patent portfolio represents significant IP upside that justifies pursuing a company with <$10M revenue:

Company: {company_name}
Patent Count: {len(patents)}

Recent Patents:
{summary}

Consider:
1. Technology innovation level (breakthrough vs incremental)
2. Market potential (large addressable market?)
3. Defensibility (strong patents vs weak)
4. Commercialization stage (early R&D vs market-ready)

Respond ONLY with JSON:
{{
  "hasSignificantIPUpside": <true|false>,
  "reasoning": "<2-3 sentence explanation>"
}}"""


class IPUpsideEvaluator:
    """Decides whether a sub-floor company's patents justify pursuing it anyway."""

    min_patents = 3
    sample_size = 10

    def __init__(
        self,
        llm: Optional[LLMOrchestrator] = None,
        patent_service: Optional[PatentService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._llm = llm or LLMOrchestrator(self._settings)
        self._patents = patent_service or PatentService(self._settings)

    async def has_ip_upside(self, company_name: str) -> bool:
        try:
            patents = await self._patents.fetch_raw_patents(company_name, UPSIDE_FIELDS, self.sample_size)
            if len(patents) < self.min_patents:
                logger.info("%s has only %d patents, insufficient for IP upside", company_name, len(patents))
                return False
            response = await self._llm.run_stage(
                LLMRequest(
                    stage=LLMStage.ip_assessment,
                    prompt=build_ip_upside_prompt(company_name, patents),
                    max_tokens=200,
                    timeout_seconds=self._settings.llm_timeout_seconds,
                )
            )
            evaluation = parse_json_object(response.text) or {}
            upside = evaluation.get("hasSignificantIPUpside") is True
            logger.info("IP upside for %s: %s (%s)", company_name, upside, evaluation.get("reasoning", ""))
            return upside
        except Exception as exc:
            logger.error("Error evaluating patent upside for %s: %s", company_name, exc)
            return False
