"""openFDA device intelligence: registrations, 510(k) clearances, recalls, adverse events."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from dealscout.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class FDADevice:
    device_name: str
    product_code: str
    regulation_number: str
    device_class: str
    registration_number: str


@dataclass
class FDAClearance:
    k_number: str
    device_name: str
    applicant: str
    date_received: str
    decision_date: str
    decision_description: str


@dataclass
class FDARecall:
    recall_number: str
    product_description: str
    reason_for_recall: str
    recall_initiation_date: str
    classification: str
    status: str


@dataclass
class FDAIntelligence:
    registered_devices: List[FDADevice] = field(default_factory=list)
    clearances: List[FDAClearance] = field(default_factory=list)
    recalls: List[FDARecall] = field(default_factory=list)
    adverse_events: int = 0
    regulatory_risk: str = "Medium"
    compliance_score: int = 50


def regulatory_risk(recalls: int, adverse_events: int, clearances: int) -> str:
    if recalls > 2 or adverse_events > 50:
        return "High"
    if recalls > 0 or adverse_events > 10:
        return "Medium"
    if clearances > 0 and recalls == 0 and adverse_events < 5:
        return "Low"
    return "Medium"


def compliance_score(devices: int, clearances: int, recalls: int, adverse_events: int) -> int:
    score = 100 - recalls * 15

    if adverse_events > 50:
        score -= 30
    elif adverse_events > 10:
        score -= 15
    elif adverse_events > 0:
        score -= 5

    if clearances > 5:
        score += 10
    elif clearances > 0:
        score += 5

    if devices > 10:
        score += 10
    elif devices > 0:
        score += 5

    return max(0, min(100, score))


def _text(item: Dict[str, Any], key: str, default: str = "") -> str:
    return str(item.get(key) or default)


class FDADataService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    async def _results(self, client: httpx.AsyncClient, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            resp = await client.get(path, params=params)
            if resp.status_code >= 400:
                return []
            results = resp.json().get("results") or []
        except Exception as exc:
            logger.warning("openFDA lookup %s failed: %s", path, exc)
            return []
        return [item for item in results if isinstance(item, dict)]

    async def get_device_registrations(self, client: httpx.AsyncClient, name: str) -> List[FDADevice]:
        items = await self._results(
            client, "/device/registrationlisting.json", {"search": f'firm_name:"{name}"', "limit": 100}
        )
        return [
            FDADevice(
                device_name=_text(item, "proprietary_name") or _text(item, "device_name", "Unknown"),
                product_code=_text(item, "product_code"),
                regulation_number=_text(item, "regulation_number"),
                device_class=_text(item, "device_class"),
                registration_number=_text(item, "registration_number"),
            )
            for item in items
        ]

    async def get_510k_clearances(self, client: httpx.AsyncClient, name: str) -> List[FDAClearance]:
        items = await self._results(client, "/device/510k.json", {"search": f'applicant:"{name}"', "limit": 100})
        return [
            FDAClearance(
                k_number=_text(item, "k_number"),
                device_name=_text(item, "device_name"),
                applicant=_text(item, "applicant"),
                date_received=_text(item, "date_received"),
                decision_date=_text(item, "decision_date"),
                decision_description=_text(item, "decision_description"),
            )
            for item in items
        ]

    async def get_recalls(self, client: httpx.AsyncClient, name: str) -> List[FDARecall]:
        items = await self._results(client, "/device/recall.json", {"search": f'firm_name:"{name}"', "limit": 100})
        return [
            FDARecall(
                recall_number=_text(item, "recall_number"),
                product_description=_text(item, "product_description"),
                reason_for_recall=_text(item, "reason_for_recall"),
                recall_initiation_date=_text(item, "recall_initiation_date"),
                classification=_text(item, "classification"),
                status=_text(item, "status"),
            )
            for item in items
        ]

    async def get_adverse_event_count(self, client: httpx.AsyncClient, name: str) -> int:
        items = await self._results(
            client, "/device/event.json", {"search": f'manufacturer_name:"{name}"', "count": "date_received"}
        )
        total = 0
        for item in items:
            try:
                total += int(item.get("count") or 0)
            except (TypeError, ValueError):
                continue
        return total

    async def get_company_fda_data(self, company_name: str) -> FDAIntelligence:
        try:
            async with httpx.AsyncClient(
                base_url=self._settings.fda_base_url,
                timeout=self._settings.http_timeout_seconds,
                transport=self._transport,
            ) as client:
                devices, clearances, recalls, events = await asyncio.gather(
                    self.get_device_registrations(client, company_name),
                    self.get_510k_clearances(client, company_name),
                    self.get_recalls(client, company_name),
                    self.get_adverse_event_count(client, company_name),
                )
        except Exception as exc:
            logger.error("Error fetching FDA data for %s: %s", company_name, exc)
            return FDAIntelligence()

        return FDAIntelligence(
            registered_devices=devices,
            clearances=clearances,
            recalls=recalls,
            adverse_events=events,
            regulatory_risk=regulatory_risk(len(recalls), events, len(clearances)),
            compliance_score=compliance_score(len(devices), len(clearances), len(recalls), events),
        )

    def format_for_report(self, intel: FDAIntelligence) -> str:
        if not intel.registered_devices and not intel.clearances:
            return (
                "## FDA Regulatory Intelligence\n\n"
                "No FDA device registrations or clearances found. Company may:\n"
                "- Not manufacture FDA-regulated devices\n"
                "- Operate under a different legal entity name\n"
                "- Be too new to appear in FDA databases\n"
                "- Focus on services rather than physical devices"
            )

        lines = [
            "## FDA Regulatory Intelligence",
            "",
            f"**Regulatory Risk: {intel.regulatory_risk}**",
            f"**Compliance Score: {intel.compliance_score}/100**",
            "",
        ]

        if intel.registered_devices:
            lines += [f"### Registered Medical Devices ({len(intel.registered_devices)})", ""]
            for device in intel.registered_devices[:5]:
                lines += [
                    f"**{device.device_name}**",
                    f"- Product Code: {device.product_code}",
                    f"- Device Class: {device.device_class}",
                    f"- Registration: {device.registration_number}",
                    "",
                ]
            if len(intel.registered_devices) > 5:
                lines += [f"*...and {len(intel.registered_devices) - 5} more devices*", ""]

        if intel.clearances:
            lines += [f"### FDA 510(k) Clearances ({len(intel.clearances)})", ""]
            for clearance in intel.clearances[:3]:
                lines += [
                    f"**{clearance.device_name}**",
                    f"- K-Number: {clearance.k_number}",
                    f"- Decision: {clearance.decision_description}",
                    f"- Date: {clearance.decision_date}",
                    "",
                ]
            if len(intel.clearances) > 3:
                lines += [f"*...and {len(intel.clearances) - 3} more clearances*", ""]

        if intel.recalls:
            lines += [f"### Product Recalls ({len(intel.recalls)})", ""]
            for recall in intel.recalls:
                lines += [
                    f"**{recall.product_description}**",
                    f"- Recall #: {recall.recall_number}",
                    f"- Reason: {recall.reason_for_recall}",
                    f"- Date: {recall.recall_initiation_date}",
                    f"- Classification: {recall.classification}",
                    f"- Status: {recall.status}",
                    "",
                ]
        else:
            lines += ["### Clean Recall History", "", "No FDA recalls found - strong quality control.", ""]

        if intel.adverse_events > 0:
            lines += ["### Adverse Events", "", f"**Total Reports:** {intel.adverse_events}", ""]
            if intel.adverse_events > 50:
                lines.append("High volume of adverse event reports. Requires investigation during due diligence.")
            elif intel.adverse_events > 10:
                lines.append("Some adverse events reported. Normal for active medical device manufacturers.")
            else:
                lines.append("Low number of adverse events. Good safety profile.")
            lines.append("")

        lines += ["### M&A Implications", ""]
        if intel.regulatory_risk == "Low":
            lines += [
                "- Low regulatory risk - strong compliance history",
                "- Clean FDA record reduces acquisition risk",
                "- No ongoing enforcement actions",
                "- Established regulatory processes",
            ]
        elif intel.regulatory_risk == "Medium":
            lines += [
                "- Moderate regulatory oversight required",
                "- Review adverse event reports during diligence",
                "- Verify quality management systems",
                "- Budget for potential remediation",
            ]
        else:
            lines += [
                "- High regulatory risk - requires deep diligence",
                "- Active recalls may impact valuation",
                "- Potential FDA enforcement pending",
                "- Legal/regulatory costs post-acquisition",
                "- Consider escrow for regulatory liabilities",
            ]
        return "\n".join(lines)


async def add_fda_intelligence(
    company_name: str,
    report: str,
    service: Optional[FDADataService] = None,
) -> str:
    service = service or FDADataService()
    intel = await service.get_company_fda_data(company_name)
    return f"{report}\n\n{service.format_for_report(intel)}"
