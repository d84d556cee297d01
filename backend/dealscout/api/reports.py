"""Report library routes."""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

from dealscout.api.deps import get_storage
from dealscout.services.storage import Storage

router = APIRouter()


class ReportSummary(BaseModel):
    id: int
    company_name: str
    website_url: Optional[str] = None
    industry: Optional[str] = None
    revenue_range: Optional[str] = None
    geographic_focus: Optional[str] = None
    status: str
    contacts_found: Optional[int] = 0
    created_at: datetime
    executive_summary: str = ""
    recommendation: str = ""
    confidence: str = ""

    class Config:
        from_attributes = True


class ReportResponse(ReportSummary):
    report: str


def extract_snippets(report: str) -> dict:
    """Pull the executive summary, recommendation and confidence out of a report."""
    snippets = {"executive_summary": "", "recommendation": "", "confidence": ""}
    if not report:
        return snippets
    lines = report.split("\n")
    lowered = [line.lower() for line in lines]

    summary_at = next((i for i, line in enumerate(lowered) if "executive summary" in line), None)
    if summary_at is not None:
        body = [line for line in lines[summary_at + 1 : summary_at + 5] if line.strip()]
        snippets["executive_summary"] = " ".join(body)[:200]

    rec_at = next(
        (i for i, line in enumerate(lowered) if "recommendation" in line or "strategic assessment" in line),
        None,
    )
    if rec_at is not None and rec_at + 1 < len(lines) and lines[rec_at + 1]:
        snippets["recommendation"] = lines[rec_at + 1][:100]

    conf_at = next((i for i, line in enumerate(lowered) if "confidence" in line), None)
    if conf_at is not None:
        line = lowered[conf_at]
        for level in ("high", "medium", "low"):
            if level in line:
                snippets["confidence"] = level.title()
                break
    return snippets


@router.get("", response_model=List[ReportSummary])
async def list_reports(storage: Storage = Depends(get_storage)):
    reports = await storage.list_reports(status="completed")
    summaries = []
    for report in reports:
        summary = ReportSummary.model_validate(report)
        summaries.append(summary.model_copy(update=extract_snippets(report.report)))
    return summaries


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(report_id: int, storage: Storage = Depends(get_storage)):
    report = await storage.get_report(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return ReportResponse.model_validate(report).model_copy(update=extract_snippets(report.report))
