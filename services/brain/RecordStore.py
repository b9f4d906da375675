"""Record store for brain entities.

Persists entities as JSON in the key-value store and maintains two
secondary indexes (by type, by category), each an ordered list of entity
ids stored under its own key. Index updates are plain read-modify-write:
concurrent writers to the same list can lose each other's update, and
readers must tolerate ids whose entity has disappeared.
"""

import json
from typing import Any

from pydantic import BaseModel, ValidationError as PydanticValidationError

from shared.clients.kv.KVClientInterface import KVClientInterface
from shared.exceptions import StoreCorruption
from shared.helper import HelperTime
from shared.helper.HelperConfig import HelperConfig
from shared.models.entity import Entity
from shared.models.query import DateRange
from shared.models.results import BrainAnalytics, IndexingStatus, RecentActivity, StorageUsage

ENTITY_PREFIX = "brain:"
TYPE_INDEX_PREFIX = "index:type:"
CATEGORY_INDEX_PREFIX = "index:category:"
DAY_MS = 24 * 60 * 60 * 1000
DEFAULT_SEARCH_LIMIT = 100
DEFAULT_LIST_LIMIT = 100


class SearchFilters(BaseModel):
    """Filters for RecordStore.search. All set filters must match."""

    type: str | None = None
    category: str | None = None
    user_id: str | None = None
    status: str | None = None
    tags: list[str] | None = None
    date_range: DateRange | None = None
    text_search: str | None = None
    limit: int = DEFAULT_SEARCH_LIMIT


class RecordStore:
    """Entity persistence plus type/category secondary indexes."""

    def __init__(self, helper_config: HelperConfig, kv_client: KVClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._kv = kv_client
        self._retention_seconds = int(helper_config.get_number_val("BRAIN_DEFAULT_RETENTION_DAYS", default=365)) * 24 * 60 * 60
        self._stats_sample_size = int(helper_config.get_number_val("BRAIN_STATS_SAMPLE_SIZE", default=1000))

    ##########################################
    ################ ENTITIES ################
    ##########################################

    async def put(self, entity: Entity, previous: Entity | None = None) -> Entity:
        """Write an entity and register it in its type and category indexes.

        Args:
            entity (Entity): The entity to store.
            previous (Entity | None): The stored version being replaced. When its
                type or category differs, the id is dropped from the old index.

        Returns:
            Entity: The entity as written, with storedAt and size stamped.
        """
        now = HelperTime.now_ms()
        entity = entity.model_copy(deep=True)
        entity.metadata.stored_at = now
        entity.metadata.size = None
        entity.metadata.size = len(json.dumps(entity.to_record()))

        await self._kv.do_put(self._entity_key(entity.id), json.dumps(entity.to_record()), ttl_seconds=self._ttl_for(entity, now))

        if previous is not None:
            if previous.type != entity.type:
                await self._update_index(TYPE_INDEX_PREFIX, previous.type, entity.id, "remove")
            if previous.metadata.category and previous.metadata.category != entity.metadata.category:
                await self._update_index(CATEGORY_INDEX_PREFIX, previous.metadata.category, entity.id, "remove")

        await self._update_index(TYPE_INDEX_PREFIX, entity.type, entity.id, "add")
        if entity.metadata.category:
            await self._update_index(CATEGORY_INDEX_PREFIX, entity.metadata.category, entity.id, "add")
        return entity

    async def get(self, entity_id: str) -> Entity | None:
        """Read an entity.

        An entity whose expiresAt lies in the past is deleted on the spot and
        reported as absent.

        Returns:
            Entity | None: The entity, or None if absent or expired.

        Raises:
            StoreCorruption: If the stored payload cannot be parsed.
        """
        key = self._entity_key(entity_id)
        raw = await self._kv.do_get(key)
        if raw is None:
            return None
        entity = self._parse_entity(key, raw)
        expires_at = entity.metadata.expires_at
        if expires_at is not None and expires_at < HelperTime.now_ms():
            self.logging.info("Entity '%s' expired, removing it.", entity_id)
            await self._remove_known(entity)
            return None
        return entity

    async def remove(self, entity_id: str) -> bool:
        """Delete an entity and drop its id from both indexes.

        Always returns True, also when the id does not exist.
        """
        try:
            existing = await self.get(entity_id)
        except StoreCorruption as exc:
            self.logging.warning("Removing corrupt entity '%s' without index cleanup: %s", entity_id, exc)
            existing = None

        if existing is not None:
            await self._remove_known(existing)
        else:
            await self._kv.do_delete(self._entity_key(entity_id))
        return True

    async def _remove_known(self, entity: Entity) -> None:
        await self._kv.do_delete(self._entity_key(entity.id))
        await self._update_index(TYPE_INDEX_PREFIX, entity.type, entity.id, "remove")
        if entity.metadata.category:
            await self._update_index(CATEGORY_INDEX_PREFIX, entity.metadata.category, entity.id, "remove")

    async def get_many(self, entity_ids: list[str]) -> list[Entity]:
        """Fetch entities by id, skipping missing, expired and corrupt ones."""
        entities: list[Entity] = []
        for entity_id in entity_ids:
            entity = await self._get_tolerant(entity_id)
            if entity is not None:
                entities.append(entity)
        return entities

    async def _get_tolerant(self, entity_id: str) -> Entity | None:
        try:
            return await self.get(entity_id)
        except StoreCorruption as exc:
            self.logging.warning("Skipping entity '%s': %s", entity_id, exc)
            return None

    ##########################################
    ################ LISTING #################
    ##########################################

    async def list_by_type(self, type: str, limit: int = DEFAULT_LIST_LIMIT, offset: int = 0) -> list[Entity]:
        """List entities of a type in index order, paginated over the id list.

        Ids whose entity no longer exists are skipped.
        """
        ids = await self._get_index(TYPE_INDEX_PREFIX, type)
        return await self.get_many(ids[offset: offset + limit])

    async def list_by_category(self, category: str, limit: int = DEFAULT_LIST_LIMIT) -> list[Entity]:
        """List entities of a category in index order."""
        ids = await self._get_index(CATEGORY_INDEX_PREFIX, category)
        return await self.get_many(ids[:limit])

    async def list_all_ids(self) -> list[str]:
        """Return every stored entity id via a prefix scan of the store.

        This is the expensive path: one listing call capped at the store's scan limit.
        """
        self.logging.warning("Performing expensive scan of all brain entities.", color="yellow")
        keys = await self._kv.do_list_keys(ENTITY_PREFIX)
        return [key[len(ENTITY_PREFIX):] for key in keys]

    async def search(self, filters: SearchFilters) -> list[Entity]:
        """Find entities matching all given filters.

        Candidates come from the most specific index available: the type
        index, else the category index, else a full scan. Equality filters
        (userId, status, category), the all-tags filter, the inclusive
        createdAt window and the case-insensitive text filter over content
        and id are applied in that order. Scanning stops once `limit`
        results are found or 3 x limit candidates have been examined.

        Returns:
            list[Entity]: Matching entities in candidate order.
        """
        if filters.type:
            candidates = await self._get_index(TYPE_INDEX_PREFIX, filters.type)
        elif filters.category:
            candidates = await self._get_index(CATEGORY_INDEX_PREFIX, filters.category)
        else:
            candidates = await self.list_all_ids()

        limit = filters.limit
        budget = min(len(candidates), limit * 3)
        text = filters.text_search.lower() if filters.text_search else None

        results: list[Entity] = []
        processed = 0
        for entity_id in candidates:
            if processed >= budget:
                break
            entity = await self._get_tolerant(entity_id)
            if entity is None:
                continue
            processed += 1

            meta = entity.metadata
            if filters.user_id and meta.user_id != filters.user_id:
                continue
            if filters.status and meta.status != filters.status:
                continue
            if filters.category and meta.category != filters.category:
                continue
            if filters.tags and not all(tag in meta.tags for tag in filters.tags):
                continue
            if filters.date_range:
                created_at = meta.created_at or 0
                if created_at < filters.date_range.start or created_at > filters.date_range.end:
                    continue
            if text and text not in entity.content.lower() and text not in entity.id.lower():
                continue

            results.append(entity)
            if len(results) >= limit:
                break

        self.logging.debug("Search found %d entities after filtering %d candidates.", len(results), processed)
        return results

    ##########################################
    ################ ANALYTICS ###############
    ##########################################

    async def stats(self) -> BrainAnalytics:
        """Aggregate counts over the stored entities.

        Above BRAIN_STATS_SAMPLE_SIZE entities only the first sample is read
        and all counts are multiplied by total / sample size. The result is
        an estimate in that case, flagged by `sampled`.
        """
        all_ids = await self.list_all_ids()
        total = len(all_ids)
        sample_size = min(total, self._stats_sample_size)
        scale = total / sample_size if sample_size else 1.0

        by_type: dict[str, int] = {}
        by_category: dict[str, int] = {}
        by_status: dict[str, int] = {}
        activity = {"created": 0, "updated": 0}
        total_size = 0
        largest_entity = ""
        largest_size = 0
        indexed = 0
        day_ago = HelperTime.now_ms() - DAY_MS

        for entity in await self.get_many(all_ids[:sample_size]):
            meta = entity.metadata
            by_type[entity.type] = by_type.get(entity.type, 0) + 1
            if meta.category:
                by_category[meta.category] = by_category.get(meta.category, 0) + 1
            status = meta.status or "active"
            by_status[status] = by_status.get(status, 0) + 1

            size = meta.size or 0
            total_size += size
            if size > largest_size:
                largest_size = size
                largest_entity = entity.id

            if meta.indexed:
                indexed += 1

            created_at = meta.created_at or 0
            updated_at = meta.updated_at or 0
            if created_at > day_ago:
                activity["created"] += 1
            if updated_at > day_ago and updated_at != created_at:
                activity["updated"] += 1

        scaled_indexed = round(indexed * scale)
        scaled_size = round(total_size * scale)
        return BrainAnalytics(
            total_entities=total,
            by_type=self._scale(by_type, scale),
            by_category=self._scale(by_category, scale),
            by_status=self._scale(by_status, scale),
            recent_activity=RecentActivity(**self._scale(activity, scale)),
            indexing_status=IndexingStatus(indexed=scaled_indexed, pending=max(0, total - scaled_indexed), failed=0),
            storage_usage=StorageUsage(
                total_size=scaled_size,
                average_size=round(scaled_size / total) if total else 0,
                largest_entity=largest_entity,
            ),
            sample_size=sample_size,
            sampled=sample_size < total,
            generated_at=HelperTime.now_ms(),
        )

    @staticmethod
    def _scale(counts: dict[str, int], scale: float) -> dict[str, int]:
        return {key: round(value * scale) for key, value in counts.items()}

    ##########################################
    ############ INDEX MANAGEMENT ############
    ##########################################

    async def _get_index(self, prefix: str, name: str) -> list[str]:
        raw = await self._kv.do_get(f"{prefix}{name}")
        if raw is None:
            return []
        try:
            ids = json.loads(raw)
        except json.JSONDecodeError as exc:
            self.logging.error("Error parsing index '%s%s': %s", prefix, name, exc)
            return []
        if not isinstance(ids, list):
            self.logging.error("Index '%s%s' is not a list, ignoring it.", prefix, name)
            return []
        return [str(entity_id) for entity_id in ids]

    async def _update_index(self, prefix: str, name: str, entity_id: str, operation: str) -> None:
        ids = await self._get_index(prefix, name)
        if operation == "add":
            if entity_id in ids:
                return
            ids.append(entity_id)
        else:
            if entity_id not in ids:
                return
            ids = [existing for existing in ids if existing != entity_id]
        await self._kv.do_put(f"{prefix}{name}", json.dumps(ids), ttl_seconds=self._retention_seconds)

    ##########################################
    ############### HELPERS ##################
    ##########################################

    @staticmethod
    def _entity_key(entity_id: str) -> str:
        return f"{ENTITY_PREFIX}{entity_id}"

    def _ttl_for(self, entity: Entity, now: int) -> int:
        expires_at = entity.metadata.expires_at
        if expires_at is None:
            return self._retention_seconds
        return max(0, (expires_at - now) // 1000)

    @staticmethod
    def _parse_entity(key: str, raw: str) -> Entity:
        try:
            record: Any = json.loads(raw)
            if not isinstance(record, dict):
                raise StoreCorruption(key, "payload is not an object")
            return Entity.from_record(record)
        except (json.JSONDecodeError, KeyError, TypeError, PydanticValidationError) as exc:
            raise StoreCorruption(key, str(exc)) from exc
