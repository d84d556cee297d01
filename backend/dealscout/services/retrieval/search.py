from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from dealscout.config import Settings, get_settings
from dealscout.services.retrieval.cache import SearchCache

logger = logging.getLogger(__name__)


class SearchAPIError(RuntimeError):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class SearchResult:
    title: str
    url: str
    text: str = ""


def _domain_label(url: str) -> str:
    host = str(urlparse(url).netloc or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if not host:
        return "Unknown"
    return host.split(".")[0].replace("-", " ").title()


def _to_results(items: List[Dict[str, Any]]) -> List[SearchResult]:
    results: List[SearchResult] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        url = str(item.get("url") or "").strip()
        if not url:
            continue
        title = str(item.get("title") or "").strip() or _domain_label(url)
        results.append(SearchResult(title=title[:300], url=url, text=str(item.get("text") or "")))
    return results


class ExaSearchClient:
    """Neural web search over the Exa API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[SearchCache] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        if cache is None and self._settings.search_cache_ttl_seconds > 0:
            cache = SearchCache(self._settings)
        self._cache = cache

    async def search(self, query: str, num_results: int) -> List[SearchResult]:
        if not self._settings.exa_api_key:
            raise SearchAPIError("EXA_API_KEY not configured")
        payload = {
            "query": query,
            "numResults": num_results,
            "type": "neural",
            "useAutoprompt": True,
            "contents": {"text": {"maxCharacters": self._settings.search_text_max_characters}},
        }
        cache_key = json.dumps(payload, sort_keys=True)
        if self._cache is not None:
            cached = await self._cache.get_json("exa", cache_key)
            if isinstance(cached, list):
                return _to_results(cached)

        async with httpx.AsyncClient(
            base_url=self._settings.exa_base_url,
            timeout=self._settings.http_timeout_seconds,
            transport=self._transport,
        ) as client:
            resp = await client.post(
                "/search",
                json=payload,
                headers={"x-api-key": self._settings.exa_api_key},
            )
        if resp.status_code >= 400:
            raise SearchAPIError(
                f"Exa search failed with {resp.status_code}: {resp.text[:300]}",
                status_code=resp.status_code,
            )
        items = resp.json().get("results") or []
        logger.info("Exa returned %d results for %r", len(items), query)
        if self._cache is not None:
            await self._cache.set_json("exa", cache_key, items)
        return _to_results(items)
