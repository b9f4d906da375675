"""Retrieval orchestrator.

Composes the record store, result cache, embedding client and search
backend into versioned CRUD operations and a read operation that walks
the strategy ladder: direct id lookup, then type listing, then semantic
search. Expected failures (BrainError) never leave this class; they are
turned into CRUDResult(success=False) or a QueryResult with the error
strategy. Key-value transport failures propagate to the caller.
"""

import asyncio
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from services.brain.AnswerBuilder import AnswerBuilder
from services.brain.RecordStore import RecordStore
from services.brain.ResultCache import ResultCache, semantic_cache_key
from services.brain.SearchBackend import BruteForceSearch, RemoteIndexSearch, SearchBackend
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.kv.KVClientInterface import KVClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.exceptions import BrainError, NotFound, RemoteIndexFailure, StoreCorruption, ValidationError
from shared.helper import HelperTime
from shared.helper.HelperConfig import HelperConfig
from shared.models.entity import Entity, EntityInput, EntityMetadata, EntityPatch
from shared.models.query import BrainQueryOptions, EntityQuery, TextQuery, parse_query
from shared.models.results import (
    AgentTool,
    BatchResult,
    BrainAnalytics,
    CRUDResult,
    QueryResult,
    SearchSource,
    SearchStrategy,
)

DEFAULT_LIST_LIMIT = 10
DIRECT_LOOKUP_CONFIDENCE = 1.0
TYPE_FILTER_CONFIDENCE = 0.9
CONVERSATION_TYPE = "conversation"


class BrainService:
    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        kv_client: KVClientInterface,
        rag_client: RAGClientInterface | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self.record_store = RecordStore(helper_config=helper_config, kv_client=kv_client)
        self.cache = ResultCache(helper_config=helper_config, kv_client=kv_client)
        self.answer_builder = AnswerBuilder()

        self.search_backend: SearchBackend
        if rag_client is not None:
            self.search_backend = RemoteIndexSearch(helper_config=helper_config, embed_client=embed_client, rag_client=rag_client)
        else:
            self.search_backend = BruteForceSearch(helper_config=helper_config, embed_client=embed_client, record_store=self.record_store)

        self.cache_ttl = int(helper_config.get_number_val("BRAIN_CACHE_TTL", default=300))
        self.chunk_max_length = int(helper_config.get_number_val("BRAIN_CHUNK_MAX_LENGTH", default=400))
        self.bulk_delay_ms = helper_config.get_number_val("BRAIN_BULK_DELAY_MS", default=5)

    ##########################################
    ################## CRUD ##################
    ##########################################

    async def create(self, data: EntityInput | dict) -> CRUDResult:
        """Store a new entity and index its content.

        Creating an id that already exists replaces the stored entity.

        Args:
            data (EntityInput | dict): id, content, type and optional metadata.
                System metadata keys supplied by the caller are ignored.

        Returns:
            CRUDResult: The stored entity on success, the failure reason otherwise.
        """
        try:
            entity_input = self._to_model(EntityInput, data)
            entity_input.ensure_required()
            self.logging.info("Brain create: '%s' (type: %s)", entity_input.id, entity_input.type)

            now = HelperTime.now_ms()
            metadata = EntityMetadata.from_user_mapping(entity_input.metadata)
            metadata.created_at = now
            metadata.updated_at = now
            metadata.version = 1
            metadata.indexed = False
            entity = Entity(id=entity_input.id, content=entity_input.content, type=entity_input.type, metadata=metadata)

            previous = await self._get_existing(entity.id)
            stored = await self.record_store.put(entity, previous=previous)
            if previous is not None:
                await self._remove_from_index(entity.id)
            stored = await self._index_content(stored)

            await self._clear_related_caches(stored.type, stored.metadata.category)
            if previous is not None:
                await self._clear_related_caches(previous.type, previous.metadata.category)

            self.logging.info("Stored and indexed '%s'", stored.id, color="green")
            return CRUDResult(success=True, message="Data created and indexed successfully", data=stored)
        except ValidationError as e:
            self.logging.error("Brain create rejected: %s", e)
            return CRUDResult(success=False, message=str(e))
        except BrainError as e:
            self.logging.error("Brain create failed: %s", e)
            return CRUDResult(success=False, message=f"Failed to create: {e}")

    async def get_by_id(self, entity_id: str) -> CRUDResult:
        """Fetch a single entity by id."""
        try:
            entity = await self.record_store.get(entity_id)
            if entity is None:
                raise NotFound(entity_id)
            return CRUDResult(success=True, message="Data retrieved successfully", data=entity)
        except NotFound as e:
            return CRUDResult(success=False, message=str(e))
        except BrainError as e:
            self.logging.error("Brain get failed for '%s': %s", entity_id, e)
            return CRUDResult(success=False, message=f"Failed to fetch: {e}")

    async def update(self, entity_id: str, patch: EntityPatch | dict) -> CRUDResult:
        """Merge patch over a stored entity and bump its version.

        Metadata is merged shallowly. The content is re-indexed when it, the
        type or the category changed, so remote chunk vectors never keep
        stale filter fields.

        Args:
            entity_id (str): Id of the entity to update. Ids are immutable.
            patch (EntityPatch | dict): Fields to change.

        Returns:
            CRUDResult: The updated entity, or NotFound's message for unknown ids.
        """
        try:
            self.logging.info("Brain update: '%s'", entity_id)
            entity_patch = self._to_model(EntityPatch, patch)
            existing = await self.record_store.get(entity_id)
            if existing is None:
                raise NotFound(entity_id)

            patch_metadata = EntityMetadata.from_user_mapping(entity_patch.metadata) if entity_patch.metadata is not None else EntityMetadata()
            metadata = existing.metadata.merged_with(patch_metadata)
            previous_version = existing.metadata.version or 1
            metadata.updated_at = HelperTime.now_ms()
            metadata.version = previous_version + 1
            metadata.previous_version = previous_version

            updated = Entity(
                id=entity_id,
                content=entity_patch.content if entity_patch.content else existing.content,
                type=entity_patch.type if entity_patch.type else existing.type,
                metadata=metadata,
            )

            content_changed = updated.content != existing.content
            needs_reindex = content_changed or updated.type != existing.type or updated.metadata.category != existing.metadata.category
            if content_changed:
                # the stored document embedding belongs to the old content
                updated.metadata.embedding = None
                updated.metadata.indexed = False
                updated.metadata.indexed_at = None

            stored = await self.record_store.put(updated, previous=existing)
            if needs_reindex:
                self.logging.info("Content or scope of '%s' changed, re-indexing...", entity_id)
                await self._remove_from_index(entity_id)
                stored = await self._index_content(stored)

            await self._clear_related_caches(stored.type, stored.metadata.category)
            if stored.type != existing.type or stored.metadata.category != existing.metadata.category:
                await self._clear_related_caches(existing.type, existing.metadata.category)

            self.logging.info("Updated '%s' to version %d", entity_id, stored.metadata.version, color="green")
            return CRUDResult(success=True, message="Data updated successfully", data=stored)
        except (ValidationError, NotFound) as e:
            self.logging.error("Brain update rejected: %s", e)
            return CRUDResult(success=False, message=str(e))
        except BrainError as e:
            self.logging.error("Brain update failed for '%s': %s", entity_id, e)
            return CRUDResult(success=False, message=f"Failed to update: {e}")

    async def delete(self, entity_id: str) -> CRUDResult:
        """Remove an entity from the store, both indexes and the remote index.

        Deleting an unknown id succeeds. A failing remote cleanup is logged and
        does not fail the delete.
        """
        try:
            self.logging.info("Brain delete: '%s'", entity_id)
            existing = await self._get_existing(entity_id)
            await self.record_store.remove(entity_id)
            await self._remove_from_index(entity_id)

            if existing is not None:
                await self._clear_related_caches(existing.type, existing.metadata.category)
            return CRUDResult(success=True, message="Data deleted successfully")
        except BrainError as e:
            self.logging.error("Brain delete failed for '%s': %s", entity_id, e)
            return CRUDResult(success=False, message=f"Failed to delete: {e}")

    ##########################################
    ################# READ ###################
    ##########################################

    async def read(self, query: str | dict | TextQuery | EntityQuery, options: BrainQueryOptions | dict | None = None) -> QueryResult:
        """Resolve a query through the strategy ladder.

        1. Direct lookup of query.id (confidence 1.0).
        2. Listing of query.type, up to options.limit (confidence 0.9).
        3. Semantic search over the query text, or over filters.searchTerm
           for object queries. Only this step is cached.

        Args:
            query: Free text or a filter object ({"id", "type", "filters"}).
            options: Query options, see BrainQueryOptions.

        Returns:
            QueryResult: The answer and its ranked sources.
        """
        try:
            parsed = parse_query(query)
            query_options = self._to_model(BrainQueryOptions, options or {})
            self.logging.info("Brain read: %s", parsed)

            if isinstance(parsed, EntityQuery):
                if parsed.id:
                    entity = await self.record_store.get(parsed.id)
                    if entity is not None:
                        self.logging.info("Read strategy: direct lookup of '%s'", parsed.id)
                        return QueryResult(
                            answer=f"Found direct match for ID: {parsed.id}",
                            sources=[self._to_source(entity, DIRECT_LOOKUP_CONFIDENCE)],
                            confidence=DIRECT_LOOKUP_CONFIDENCE,
                            strategy=SearchStrategy.DIRECT_LOOKUP,
                        )

                if parsed.type:
                    entities = await self.record_store.list_by_type(parsed.type, limit=query_options.limit or DEFAULT_LIST_LIMIT)
                    if entities:
                        self.logging.info("Read strategy: type filter '%s' (%d items)", parsed.type, len(entities))
                        return QueryResult(
                            answer=f"Found {len(entities)} items of type: {parsed.type}",
                            sources=[self._to_source(entity, TYPE_FILTER_CONFIDENCE) for entity in entities],
                            confidence=TYPE_FILTER_CONFIDENCE,
                            strategy=SearchStrategy.TYPE_FILTER,
                        )

            text = parsed.text if isinstance(parsed, TextQuery) else parsed.search_text()
            return await self._semantic_search(text, query_options)
        except (BrainError, PydanticValidationError) as e:
            self.logging.error("Brain read failed: %s", e)
            return QueryResult(
                answer="Error occurred during read operation",
                sources=[],
                confidence=0.0,
                strategy=SearchStrategy.ERROR,
            )

    async def _semantic_search(self, text: str, options: BrainQueryOptions) -> QueryResult:
        cache_key = semantic_cache_key(text, options)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            try:
                result = QueryResult.model_validate(cached)
                self.logging.info("Returning cached semantic search for '%s'", text)
                return result.model_copy(update={"strategy": SearchStrategy.CACHED})
            except PydanticValidationError as e:
                self.logging.warning("Ignoring unreadable cache entry for '%s': %s", text, e)

        self.logging.info("Read strategy: %s for '%s'", self.search_backend.strategy.value, text)
        query_vector = await self._embed_client.do_embed_text(text)
        outcome = await self.search_backend.search(query_vector, options)

        result = QueryResult(
            answer=self.answer_builder.build(text, outcome.sources, options.response_style),
            sources=outcome.sources,
            confidence=outcome.sources[0].score if outcome.sources else 0.0,
            strategy=self.search_backend.strategy,
            metadata={
                "totalMatches": outcome.total_matches,
                "filteredMatches": len(outcome.sources),
                "threshold": outcome.threshold,
            },
        )
        await self.cache.set(cache_key, result.model_dump(mode="json"), self.cache_ttl)
        return result

    ##########################################
    ################# BULK ###################
    ##########################################

    async def bulk_create(self, items: list[EntityInput | dict]) -> BatchResult:
        """Create items one after another. A failing item does not stop the rest."""
        results: list[CRUDResult] = []
        for item in items:
            results.append(await self.create(item))
            await self._bulk_pause()
        return BatchResult.from_results("create", results)

    async def bulk_update(self, updates: list[dict]) -> BatchResult:
        """Apply updates given as [{"id": ..., "data": {...}}, ...] one after another."""
        results: list[CRUDResult] = []
        for update in updates:
            entity_id = update.get("id")
            if not entity_id:
                results.append(CRUDResult(success=False, message="Missing required field: id"))
                continue
            results.append(await self.update(entity_id, update.get("data") or {}))
            await self._bulk_pause()
        return BatchResult.from_results("update", results)

    async def bulk_delete(self, entity_ids: list[str]) -> BatchResult:
        results: list[CRUDResult] = []
        for entity_id in entity_ids:
            results.append(await self.delete(entity_id))
            await self._bulk_pause()
        return BatchResult.from_results("delete", results)

    async def _bulk_pause(self) -> None:
        await asyncio.sleep(self.bulk_delay_ms / 1000)

    ##########################################
    ############### ANALYTICS ################
    ##########################################

    async def get_analytics(self) -> BrainAnalytics:
        """Aggregate statistics, extrapolated from a sample on large stores."""
        analytics = await self.record_store.stats()
        self.logging.info(
            "Analytics over %d entities (sample %d%s)",
            analytics.total_entities,
            analytics.sample_size,
            ", extrapolated" if analytics.sampled else "",
        )
        return analytics

    ##########################################
    ########## CONVERSATION HISTORY ##########
    ##########################################

    async def write(self, conversation: dict) -> CRUDResult:
        """Store a conversation record ({"id", "content", "metadata"}) as an entity of type conversation."""
        result = await self.create(
            {
                "id": conversation.get("id", ""),
                "content": conversation.get("content", ""),
                "type": CONVERSATION_TYPE,
                "metadata": conversation.get("metadata") or {},
            }
        )
        return CRUDResult(success=result.success, message=result.message)

    async def query(self, text: str, options: BrainQueryOptions | dict | None = None) -> QueryResult:
        """Free-text read, scoped to conversations when options carry a conversationId."""
        try:
            query_options = self._to_model(BrainQueryOptions, options or {})
        except ValidationError as e:
            self.logging.error("Brain query rejected: %s", e)
            return QueryResult(answer="Error occurred during read operation", strategy=SearchStrategy.ERROR)
        scoped = query_options.model_copy(update={"type": CONVERSATION_TYPE if query_options.conversation_id else None})
        return await self.read(text, scoped)

    ##########################################
    ############## AGENT TOOLS ###############
    ##########################################

    def get_agent_tools(self) -> list[AgentTool]:
        """Describe the brain operations as tools an LLM agent can call."""
        return [
            AgentTool(
                name="brain_create",
                description="Store any type of data in the brain with intelligent indexing",
                parameters={
                    "type": "object",
                    "properties": {
                        "id": {"type": "string", "description": "Unique identifier"},
                        "content": {"type": "string", "description": "Content to store"},
                        "type": {"type": "string", "description": "Data type (document, conversation, note, etc.)"},
                        "metadata": {"type": "object", "description": "Additional metadata"},
                    },
                    "required": ["id", "content", "type"],
                },
            ),
            AgentTool(
                name="brain_read",
                description="Intelligent retrieval from the brain using multiple search strategies",
                parameters={
                    "type": "object",
                    "properties": {
                        "query": {"type": ["string", "object"], "description": "Search query or filter object"},
                        "options": {
                            "type": "object",
                            "properties": {
                                "type": {"type": "string"},
                                "category": {"type": "string"},
                                "ids": {"type": "array", "items": {"type": "string"}},
                                "limit": {"type": "number", "minimum": 1, "maximum": 100},
                                "threshold": {"type": "number", "minimum": 0, "maximum": 1},
                                "includeMetadata": {"type": "boolean"},
                                "responseStyle": {"type": "string", "enum": ["summary", "detailed", "default"]},
                            },
                        },
                    },
                    "required": ["query"],
                },
            ),
            AgentTool(
                name="brain_update",
                description="Update existing data in the brain with versioning",
                parameters={
                    "type": "object",
                    "properties": {
                        "id": {"type": "string", "description": "ID of data to update"},
                        "updates": {"type": "object", "description": "Fields to update"},
                    },
                    "required": ["id", "updates"],
                },
            ),
            AgentTool(
                name="brain_delete",
                description="Remove data from the brain completely",
                parameters={
                    "type": "object",
                    "properties": {"id": {"type": "string", "description": "ID of data to delete"}},
                    "required": ["id"],
                },
            ),
            AgentTool(
                name="brain_analytics",
                description="Get insights and statistics about the brain's contents",
                parameters={"type": "object", "properties": {}, "required": []},
            ),
        ]

    ##########################################
    ################ HELPERS #################
    ##########################################

    async def _index_content(self, entity: Entity) -> Entity:
        """Embed the first chunk as document embedding and hand all chunks to the search backend.

        Raises:
            EmbeddingFailure: If any chunk cannot be embedded.
            RemoteIndexFailure: If the remote upsert fails.
        """
        chunks = EmbedClientInterface.chunk_text(entity.content, self.chunk_max_length)
        document_embedding = await self._embed_client.do_embed_text(chunks[0])
        await self.search_backend.index_chunks(entity, chunks, document_embedding)

        indexed = entity.model_copy(deep=True)
        indexed.metadata.embedding = document_embedding
        indexed.metadata.indexed = True
        indexed.metadata.indexed_at = HelperTime.now_ms()
        return await self.record_store.put(indexed)

    async def _remove_from_index(self, entity_id: str) -> None:
        try:
            await self.search_backend.remove(entity_id)
        except (RemoteIndexFailure, httpx.HTTPError) as e:
            self.logging.error("Index deletion failed for '%s': %s", entity_id, e)

    async def _clear_related_caches(self, type: str | None, category: str | None) -> None:
        await self.cache.invalidate(type, category)

    async def _get_existing(self, entity_id: str) -> Entity | None:
        try:
            return await self.record_store.get(entity_id)
        except StoreCorruption as e:
            self.logging.warning("Ignoring corrupt stored entity '%s': %s", entity_id, e)
            return None

    @staticmethod
    def _to_source(entity: Entity, score: float) -> SearchSource:
        return SearchSource(
            id=entity.id,
            content=entity.content,
            score=score,
            metadata=entity.metadata.to_mapping(include_embedding=False),
        )

    @staticmethod
    def _to_model(model: Any, data: Any) -> Any:
        """Validate caller input into model, reporting shape errors as ValidationError."""
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {model.__name__}: {e.error_count()} validation error(s)") from e
