from __future__ import annotations

import logging
from typing import Dict, List, Optional

from dealscout.config import Settings, get_settings
from dealscout.services.retrieval.search import ExaSearchClient, SearchResult
from dealscout.services.types import Candidate, SearchCriteria

logger = logging.getLogger(__name__)


def build_search_query(criteria: SearchCriteria) -> str:
    parts = [
        criteria.query,
        criteria.industry,
        criteria.revenue_range,
        criteria.geographic_focus,
    ]
    return " ".join(str(part).strip() for part in parts if part and str(part).strip())


def dedupe_by_title(results: List[SearchResult]) -> List[SearchResult]:
    """Keep the first result per case-insensitive, trimmed title."""
    unique: Dict[str, SearchResult] = {}
    for result in results:
        key = result.title.lower().strip()
        if key not in unique:
            unique[key] = result
    return list(unique.values())


class CandidateDiscovery:
    def __init__(
        self,
        storage,
        search_client: Optional[ExaSearchClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._storage = storage
        self._search = search_client or ExaSearchClient(self._settings)

    async def discover(self, criteria: SearchCriteria) -> List[Candidate]:
        query = build_search_query(criteria)
        num_results = criteria.max_results or self._settings.discovery_max_results
        logger.info("Discovering companies for query %r (numResults=%d)", query, num_results)

        results = await self._search.search(query, num_results)
        if not results:
            logger.warning("Search returned no results for query %r", query)
            return []

        deduped = dedupe_by_title(results)
        candidates: List[Candidate] = []
        skipped = 0
        for result in deduped:
            existing = await self._storage.find_existing_company(result.title, result.url)
            if existing is not None:
                skipped += 1
                logger.info(
                    "Skipping %s: already queued (id=%s, status=%s)",
                    result.title, existing.id, existing.approval_status,
                )
                continue
            candidates.append(Candidate(name=result.title, url=result.url, text=result.text))

        logger.info(
            "Found %d companies, %d after dedup, %d new (%d already known)",
            len(results), len(deduped), len(candidates), skipped,
        )
        return candidates
