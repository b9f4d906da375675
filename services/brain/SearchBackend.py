"""Similarity search backends.

BrainService picks one backend at construction: RemoteIndexSearch when a
vector index client is configured, BruteForceSearch otherwise. Both rank
sources against an already computed query vector; chunk-level indexing
and index cleanup are no-ops for the brute-force backend because it only
uses the document-level embedding stored on each entity.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from services.brain.RecordStore import RecordStore, SearchFilters
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorRecord import VectorRecord
from shared.helper import HelperTime
from shared.helper.HelperConfig import HelperConfig
from shared.helper.HelperVector import cosine_similarity
from shared.models.entity import Entity
from shared.models.query import BrainQueryOptions
from shared.models.results import SearchSource, SearchStrategy

DEFAULT_TOP_K = 10
CANDIDATE_LIMIT = 100


class SearchOutcome(BaseModel):
    """Ranked sources of one search plus the numbers reported alongside them."""

    sources: list[SearchSource]
    total_matches: int
    threshold: float


class SearchBackend(ABC):
    strategy: SearchStrategy

    def __init__(self, helper_config: HelperConfig, embed_client: EmbedClientInterface, default_threshold: float) -> None:
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self.default_threshold = default_threshold
        self.chunk_max_length = int(helper_config.get_number_val("BRAIN_CHUNK_MAX_LENGTH", default=400))

    def _resolve_threshold(self, options: BrainQueryOptions) -> float:
        return options.threshold if options.threshold is not None else self.default_threshold

    @staticmethod
    def _resolve_limit(options: BrainQueryOptions) -> int:
        return options.limit if options.limit and options.limit > 0 else DEFAULT_TOP_K

    @abstractmethod
    async def search(self, query_vector: list[float], options: BrainQueryOptions) -> SearchOutcome:
        """Rank stored content against query_vector.

        Never returns a source scoring below the effective threshold.
        """
        pass

    @abstractmethod
    async def index_chunks(self, entity: Entity, chunks: list[str], document_embedding: list[float]) -> None:
        """Make the chunks of entity searchable."""
        pass

    @abstractmethod
    async def remove(self, entity_id: str) -> None:
        """Drop everything indexed for entity_id."""
        pass


class RemoteIndexSearch(SearchBackend):
    """Chunk-level search through the remote vector index."""

    strategy = SearchStrategy.SEMANTIC_REMOTE

    def __init__(self, helper_config: HelperConfig, embed_client: EmbedClientInterface, rag_client: RAGClientInterface) -> None:
        super().__init__(
            helper_config=helper_config,
            embed_client=embed_client,
            default_threshold=float(helper_config.get_number_val("BRAIN_REMOTE_THRESHOLD", default=0.3)),
        )
        self._rag_client = rag_client

    ##########################################
    ################ SEARCH ##################
    ##########################################

    @staticmethod
    def build_filter(options: BrainQueryOptions) -> dict[str, Any] | None:
        """Translate query options into an index metadata filter, or None when unfiltered."""
        filter: dict[str, Any] = {}
        if options.type:
            filter["type"] = options.type
        if options.category:
            filter["category"] = options.category
        if options.user_id:
            filter["userId"] = options.user_id
        if options.date_range:
            filter["createdAt"] = {"$gte": options.date_range.start, "$lte": options.date_range.end}
        return filter or None

    async def search(self, query_vector: list[float], options: BrainQueryOptions) -> SearchOutcome:
        threshold = self._resolve_threshold(options)
        response = await self._rag_client.do_query(
            vector=query_vector,
            top_k=self._resolve_limit(options),
            filter=self.build_filter(options),
            include_metadata=True,
        )

        sources: list[SearchSource] = []
        for match in response.matches:
            if match.score < threshold:
                continue
            metadata = match.metadata or {}
            sources.append(
                SearchSource(
                    id=str(metadata.get("originalId") or match.id),
                    content=str(metadata.get("content") or ""),
                    score=match.score,
                    metadata=metadata if options.include_metadata else None,
                )
            )
        sources.sort(key=lambda s: s.score, reverse=True)
        return SearchOutcome(sources=sources, total_matches=len(response.matches), threshold=threshold)

    ##########################################
    ################ INDEXING ################
    ##########################################

    async def index_chunks(self, entity: Entity, chunks: list[str], document_embedding: list[float]) -> None:
        self.logging.info("Created %d chunks for indexing '%s'", len(chunks), entity.id)
        vectors: list[VectorRecord] = []
        for index, chunk in enumerate(chunks):
            # the document embedding already is the embedding of the first chunk
            values = document_embedding if index == 0 else await self._embed_client.do_embed_text(chunk)
            vectors.append(
                VectorRecord(
                    id=f"{entity.id}_chunk_{index}",
                    values=values,
                    metadata=self._chunk_metadata(entity, chunk, index, len(chunks)),
                )
            )
        await self._rag_client.do_batch_upsert(vectors)
        self.logging.info("Content of '%s' indexed in remote index.", entity.id)

    @staticmethod
    def _chunk_metadata(entity: Entity, chunk: str, index: int, total: int) -> dict[str, Any]:
        metadata = entity.metadata.to_mapping(include_embedding=False)
        metadata.update({
            "originalId": entity.id,
            "content": chunk,
            "chunkIndex": index,
            "totalChunks": total,
            "type": entity.type,
            "category": entity.metadata.category,
            "userId": entity.metadata.user_id,
            "createdAt": entity.metadata.created_at,
        })
        # the index rejects null metadata values
        return {key: value for key, value in metadata.items() if value is not None}

    async def remove(self, entity_id: str) -> None:
        await self._rag_client.do_delete_by_filter({"originalId": entity_id})
        self.logging.info("Removed '%s' from remote index.", entity_id)


class BruteForceSearch(SearchBackend):
    """Cosine ranking over document-level embeddings kept on the entities."""

    strategy = SearchStrategy.SEMANTIC_KV

    def __init__(self, helper_config: HelperConfig, embed_client: EmbedClientInterface, record_store: RecordStore) -> None:
        super().__init__(
            helper_config=helper_config,
            embed_client=embed_client,
            default_threshold=float(helper_config.get_number_val("BRAIN_FALLBACK_THRESHOLD", default=0.25)),
        )
        self._record_store = record_store

    async def _get_candidates(self, options: BrainQueryOptions) -> list[Entity]:
        if options.ids:
            return await self._record_store.get_many(options.ids)
        return await self._record_store.search(
            SearchFilters(
                type=options.type,
                category=options.category,
                user_id=options.user_id,
                date_range=options.date_range,
                limit=CANDIDATE_LIMIT,
            )
        )

    async def _ensure_embedding(self, entity: Entity) -> Entity:
        """Backfill and persist the document embedding of an entity indexed before it had one."""
        if entity.metadata.embedding:
            return entity
        self.logging.info("Backfilling document embedding for '%s'", entity.id)
        chunks = EmbedClientInterface.chunk_text(entity.content, self.chunk_max_length)
        embedding = await self._embed_client.do_embed_text(chunks[0])
        updated = entity.model_copy(deep=True)
        updated.metadata.embedding = embedding
        updated.metadata.indexed = True
        updated.metadata.indexed_at = HelperTime.now_ms()
        return await self._record_store.put(updated)

    async def search(self, query_vector: list[float], options: BrainQueryOptions) -> SearchOutcome:
        self.logging.info("No remote index configured, using key-value similarity search.")
        candidates = await self._get_candidates(options)

        scored: list[tuple[Entity, float]] = []
        for candidate in candidates:
            entity = await self._ensure_embedding(candidate)
            scored.append((entity, cosine_similarity(query_vector, entity.metadata.embedding or [])))
        scored.sort(key=lambda pair: pair[1], reverse=True)

        threshold = self._resolve_threshold(options)
        sources = [
            SearchSource(
                id=entity.id,
                content=entity.content,
                score=score,
                metadata=entity.metadata.to_mapping(include_embedding=False) if options.include_metadata else None,
            )
            for entity, score in scored
            if score >= threshold
        ][: self._resolve_limit(options)]
        return SearchOutcome(sources=sources, total_matches=len(scored), threshold=threshold)

    async def index_chunks(self, entity: Entity, chunks: list[str], document_embedding: list[float]) -> None:
        self.logging.debug("No remote index configured, kept document embedding of '%s' in the store.", entity.id)

    async def remove(self, entity_id: str) -> None:
        return None
