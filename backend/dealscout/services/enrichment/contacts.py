"""Key-contact extraction from research reports and Apollo verification."""
from __future__ import annotations

import logging
import re
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import httpx

from dealscout.config import Settings, get_settings
from dealscout.services.types import DecisionMaker, EnrichedContact

logger = logging.getLogger(__name__)

CONTACTS_HEADING = "## 8. Key Contacts & Decision-Maker Intelligence"
APOLLO_PROFILE_URL = "https://app.apollo.io/#/people/{id}"

_SECTION = re.compile(r"##\s*8\.\s*Key Contacts[^\n]*\n(.*?)(?=\n##|\Z)", re.IGNORECASE | re.DOTALL)
_SECTION_WITH_HEADING = re.compile(r"##\s*8\.\s*Key Contacts[^\n]*\n.*?(?=\n##|\Z)", re.IGNORECASE | re.DOTALL)
_CONTACT_ENTRY = re.compile(r"\*\*\[?([^\]*\n]+?)\]?\*\*\s*-\s*([^\n]+)")


class ApolloAPIError(RuntimeError):
    pass


def extract_contacts_section(report: str) -> Optional[str]:
    match = _SECTION.search(report or "")
    return match.group(1) if match else None


def _linkedin_for(name: str, block: str) -> Optional[str]:
    pattern = re.compile(re.escape(name) + r"[\s\S]*?LinkedIn[^\n]*?(https?://[^\s)]+)", re.IGNORECASE)
    match = pattern.search(block)
    return match.group(1) if match else None


def extract_decision_makers(report: str, company: str = "") -> List[DecisionMaker]:
    """Parse ``**Name** - Title`` entries from the Key Contacts section.

    The LinkedIn lookup is confined to the text between one entry and the
    next, so a URL never leaks onto a neighbouring contact.
    """
    section = extract_contacts_section(report)
    if section is None:
        return []

    matches = list(_CONTACT_ENTRY.finditer(section))
    people: List[DecisionMaker] = []
    for index, match in enumerate(matches):
        name = match.group(1).strip()
        title = match.group(2).strip()
        if not name:
            continue
        end = matches[index + 1].start() if index + 1 < len(matches) else len(section)
        block = section[match.start() : end]
        people.append(
            DecisionMaker(name=name, title=title, company=company, linkedin_url=_linkedin_for(name, block))
        )
    return people


def build_enriched_contacts_section(contacts: List[EnrichedContact]) -> str:
    lines = [CONTACTS_HEADING, ""]
    for contact in contacts:
        lines.append(f"**{contact.name}** - {contact.title}")
        if contact.email:
            lines.append(f"- **Email:** {contact.email} (verified by Apollo)")
        if contact.phone:
            lines.append(f"- **Phone:** {contact.phone}")
        if contact.linkedin_url:
            lines.append(f"- **LinkedIn:** {contact.linkedin_url}")
        if contact.apollo_url:
            lines.append(f"- **Apollo Profile:** {contact.apollo_url}")
        lines.append("")
    return "\n".join(lines) + "\n"


def replace_contacts_section(report: str, section: str) -> str:
    return _SECTION_WITH_HEADING.sub(lambda _: section, report, count=1)


class ApolloClient:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._settings.apollo_api_key)

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self._settings.apollo_base_url,
            timeout=self._settings.http_timeout_seconds,
            transport=self._transport,
        ) as client:
            resp = await client.post(
                path,
                json=payload,
                headers={"X-Api-Key": self._settings.apollo_api_key, "Cache-Control": "no-cache"},
            )
        if resp.status_code >= 400:
            raise ApolloAPIError(f"Apollo API error ({resp.status_code}): {resp.text[:200]}")
        return resp.json()

    async def search_person(self, name: str, company: str, title: Optional[str] = None) -> Optional[Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "q_keywords": name,
            "organization_names": [company],
            "per_page": 1,
        }
        if title:
            payload["person_titles"] = [title]
        data = await self._post("/people/search", payload)
        people = data.get("people") or []
        return people[0] if people else None

    async def enrich_company(self, company: str, domain: Optional[str] = None) -> Optional[Dict[str, Any]]:
        payload: Dict[str, Any] = {"name": company}
        if domain:
            payload["domain"] = domain
        data = await self._post("/organizations/enrich", payload)
        return data.get("organization")

    async def enrich_contact(self, contact: DecisionMaker) -> EnrichedContact:
        person = await self.search_person(contact.name, contact.company, contact.title)
        if not person:
            return EnrichedContact(verified=False, **asdict(contact))
        phones = person.get("phone_numbers") or []
        return EnrichedContact(
            name=contact.name,
            title=contact.title,
            company=contact.company,
            linkedin_url=contact.linkedin_url or person.get("linkedin_url"),
            email=person.get("email"),
            phone=phones[0].get("sanitized_number") if phones and isinstance(phones[0], dict) else None,
            verified=True,
            apollo_url=APOLLO_PROFILE_URL.format(id=person["id"]) if person.get("id") else None,
        )

    async def enrich_contacts(self, contacts: List[DecisionMaker]) -> List[EnrichedContact]:
        enriched: List[EnrichedContact] = []
        for contact in contacts:
            try:
                enriched.append(await self.enrich_contact(contact))
            except Exception as exc:
                logger.warning("Failed to enrich %s: %s", contact.name, exc)
                enriched.append(EnrichedContact(verified=False, **asdict(contact)))
        return enriched


async def enrich_report_contacts(company: str, report: str, client: Optional[ApolloClient] = None) -> str:
    client = client or ApolloClient()
    if not client.configured:
        logger.info("Apollo API key not configured, skipping contact enrichment")
        return report

    people = extract_decision_makers(report, company)
    if not people:
        logger.info("No decision-makers found in report for %s", company)
        return report

    enriched = await client.enrich_contacts(people)
    verified = sum(1 for contact in enriched if contact.verified)
    logger.info("Apollo enriched %d/%d contacts for %s", verified, len(people), company)
    return replace_contacts_section(report, build_enriched_contacts_section(enriched))
