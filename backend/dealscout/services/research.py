from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from dealscout.config import Settings, get_settings
from dealscout.services.enrichment.contacts import ApolloClient, enrich_report_contacts, extract_decision_makers
from dealscout.services.enrichment.fda import FDADataService, add_fda_intelligence
from dealscout.services.enrichment.patents import PatentService, add_patent_intelligence
from dealscout.services.llm.orchestrator import LLMOrchestrator
from dealscout.services.llm.types import LLMRequest, LLMStage
from dealscout.services.types import Candidate

logger = logging.getLogger(__name__)


class ResearchError(RuntimeError):
    pass


def build_research_prompt(candidate: Candidate) -> str:
    return f"""Research this company for M&A analysis:

Company: {candidate.name}
Website: {candidate.url}
Description: {candidate.text}

Create a comprehensive M&A research report with these sections:
1. Executive Summary
2. Strategic Assessment (Buy-Side vs Sell-Side recommendation)
3. Business Overview
4. Financial Intelligence
5. Competitive Landscape
6. Management Team
7. Growth Indicators
8. Key Contacts & Decision-Maker Intelligence
9. Risks & Diligence Priorities
10. Valuation Framework
11. Next Steps

IMPORTANT for Section 8 (Key Contacts & Decision-Maker Intelligence):
Find as many key decision-makers as possible. For each person, use this exact format:
**[Full Name]** - [Their Title]

Prioritize finding these roles:
- Founder / Co-Founder
- Owner / Co-Owner
- CEO / President
- COO (Chief Operating Officer)
- CFO (Chief Financial Officer)
- VP of Business Development / VP of Sales
- General Manager / Managing Director

For each contact found, include:
- Their LinkedIn profile URL if available
- How long they've been in the role (if findable)
- Any relevant background (prior companies, board seats)

Search thoroughly - check the company website's "About Us" / "Team" / "Leadership" pages, LinkedIn company page, press releases, and news articles to find ALL key people.

Use web search to find current information."""


class ReportGenerator:
    """Builds the final markdown report: LLM draft, public databases, verified contacts."""

    def __init__(
        self,
        llm: Optional[LLMOrchestrator] = None,
        patents: Optional[PatentService] = None,
        fda: Optional[FDADataService] = None,
        apollo: Optional[ApolloClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._llm = llm or LLMOrchestrator(self._settings)
        self._patents = patents or PatentService(self._settings)
        self._fda = fda or FDADataService(self._settings)
        self._apollo = apollo or ApolloClient(self._settings)

    async def generate_base_report(self, candidate: Candidate) -> str:
        response = await self._llm.run_stage(
            LLMRequest(
                stage=LLMStage.report_generation,
                prompt=build_research_prompt(candidate),
                max_tokens=16000,
                timeout_seconds=self._settings.report_timeout_seconds,
                use_web_search=True,
            )
        )
        text = (response.text or "").strip()
        if len(text) < self._settings.report_min_length:
            raise ResearchError(
                f"Report too short for {candidate.name} ({len(text)} chars)"
            )
        return text

    def needs_fda(self, industry: str) -> bool:
        lowered = (industry or "").lower()
        return any(keyword in lowered for keyword in self._settings.fda_keywords)

    async def enhance_with_databases(self, name: str, industry: str, report: str) -> str:
        enhanced = report
        try:
            enhanced = await add_patent_intelligence(name, enhanced, self._patents)
        except Exception as exc:
            logger.error("Patent intelligence failed for %s: %s", name, exc)

        if self.needs_fda(industry):
            try:
                enhanced = await add_fda_intelligence(name, enhanced, self._fda)
            except Exception as exc:
                logger.error("FDA intelligence failed for %s: %s", name, exc)
        return enhanced

    async def enrich_contacts(self, name: str, report: str) -> str:
        try:
            return await enrich_report_contacts(name, report, self._apollo)
        except Exception as exc:
            logger.error("Contact enrichment failed for %s: %s", name, exc)
            return report

    async def build_report(self, candidate: Candidate) -> str:
        base = await self.generate_base_report(candidate)
        logger.info("Base report for %s: %d chars", candidate.name, len(base))

        enhanced = await self.enhance_with_databases(candidate.name, candidate.industry, base)
        final = await self.enrich_contacts(candidate.name, enhanced or base)
        if not final or not final.strip():
            raise ResearchError(f"Final report is empty after enrichment for {candidate.name}")
        logger.info("Final report for %s: %d chars", candidate.name, len(final))
        return final

    async def build_report_record(self, candidate: Candidate) -> Dict[str, Any]:
        report = await self.build_report(candidate)
        return {
            "company_name": candidate.name,
            "website_url": candidate.url,
            "industry": candidate.industry,
            "revenue_range": candidate.estimated_revenue,
            "geographic_focus": candidate.geographic_focus,
            "report": report,
            "status": "completed",
            "contacts_found": len(extract_decision_makers(report, candidate.name)),
        }
