"""Best-effort result cache over the key-value store.

Entries are stored as {"value": ..., "expires": epoch_ms} under the
"cache:" prefix. Every storage error degrades to a miss or a no-op: the
cache accelerates reads but is never required for a correct answer.
"""

import hashlib
import json
from typing import Any
from urllib.parse import quote

from shared.clients.kv.KVClientInterface import KVClientInterface
from shared.helper import HelperTime
from shared.helper.HelperConfig import HelperConfig
from shared.models.query import BrainQueryOptions

CACHE_PREFIX = "cache:"
SEMANTIC_PREFIX = "semantic:"
UNSCOPED = "*"


def semantic_cache_key(text: str, options: BrainQueryOptions) -> str:
    """Derive the cache key of a semantic search.

    The key is "semantic:{type}:{category}:{digest}". The type and category
    segments hold the query's scope ("*" when unscoped) so that writes can
    invalidate exactly the results they might affect. The digest covers the
    query text and every option.
    """
    payload = json.dumps(
        {"query": text, "options": options.model_dump(mode="json", by_alias=True, exclude_none=True)},
        sort_keys=True,
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{SEMANTIC_PREFIX}{_scope(options.type)}:{_scope(options.category)}:{digest}"


def _scope(value: str | None) -> str:
    return quote(value, safe="") if value else UNSCOPED


class ResultCache:
    def __init__(self, helper_config: HelperConfig, kv_client: KVClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._kv = kv_client

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss, expiry or storage error."""
        try:
            raw = await self._kv.do_get(f"{CACHE_PREFIX}{key}")
            if raw is None:
                return None
            entry = json.loads(raw)
            expires = entry.get("expires")
            if expires and HelperTime.now_ms() > expires:
                await self.delete(key)
                return None
            return entry.get("value")
        except Exception as e:
            self.logging.error("Cache get failed for key=%s: %s", key, e)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int = 3600) -> None:
        """Store value until now + ttl_seconds."""
        try:
            entry = {"value": value, "expires": HelperTime.now_ms() + ttl_seconds * 1000}
            await self._kv.do_put(f"{CACHE_PREFIX}{key}", json.dumps(entry), ttl_seconds=ttl_seconds)
        except Exception as e:
            self.logging.error("Cache set failed for key=%s: %s", key, e)

    async def delete(self, key: str) -> None:
        try:
            await self._kv.do_delete(f"{CACHE_PREFIX}{key}")
        except Exception as e:
            self.logging.error("Cache delete failed for key=%s: %s", key, e)

    async def invalidate(self, type: str | None, category: str | None) -> int:
        """Drop every cached semantic result whose scope could include an entity of this type and category.

        A result is affected when its type scope is unscoped or equal to type,
        and its category scope is unscoped or equal to category.

        Returns:
            int: Number of entries removed.
        """
        type_scopes = {UNSCOPED, _scope(type)}
        category_scopes = {UNSCOPED, _scope(category)}
        removed = 0
        try:
            keys = await self._kv.do_list_keys(f"{CACHE_PREFIX}{SEMANTIC_PREFIX}")
        except Exception as e:
            self.logging.error("Cache invalidation listing failed: %s", e)
            return 0

        for full_key in keys:
            parts = full_key[len(CACHE_PREFIX) + len(SEMANTIC_PREFIX):].split(":")
            if len(parts) != 3:
                continue
            if parts[0] in type_scopes and parts[1] in category_scopes:
                await self.delete(full_key[len(CACHE_PREFIX):])
                removed += 1

        if removed:
            self.logging.debug("Invalidated %d cached results for type=%s category=%s", removed, type, category)
        return removed
