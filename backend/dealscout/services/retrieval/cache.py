from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

import redis.asyncio as redis

from dealscout.config import Settings, get_settings


class SearchCache:
    """Best-effort Redis cache for search responses. Failures read as misses."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Any] = None) -> None:
        settings = settings or get_settings()
        self.ttl_seconds = int(settings.search_cache_ttl_seconds)
        self._client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)

    @staticmethod
    def _key(namespace: str, payload: str) -> str:
        digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
        return f"search:{namespace}:{digest}"

    async def get_json(self, namespace: str, payload: str) -> Optional[Any]:
        key = self._key(namespace, payload)
        try:
            raw = await self._client.get(key)
            if not raw:
                return None
            return json.loads(raw)
        except Exception:
            return None

    async def set_json(self, namespace: str, payload: str, value: Any) -> None:
        key = self._key(namespace, payload)
        try:
            await self._client.setex(key, max(1, self.ttl_seconds), json.dumps(value))
        except Exception:
            return
