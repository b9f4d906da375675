"""Wire models for the remote vector index."""

from typing import Any

from pydantic import BaseModel, Field


class VectorRecord(BaseModel):
    """A single vector stored in the remote index.

    Chunk vectors of an entity use the id "{entity_id}_chunk_{index}" and
    carry the entity's metadata plus originalId, content, chunkIndex and
    totalChunks so that remote matches and filter deletes resolve back to
    the entity.
    """

    id: str
    values: list[float]
    metadata: dict[str, Any] | None = None


class QueryMatch(BaseModel):
    """One ranked match returned by an index query."""

    id: str
    score: float
    values: list[float] | None = None
    metadata: dict[str, Any] | None = None


class IndexQueryResponse(BaseModel):
    """Result of an index query, ranked by descending score."""

    matches: list[QueryMatch] = []
    namespace: str | None = None


class NamespaceStats(BaseModel):
    vector_count: int = Field(default=0, alias="vectorCount")


class IndexStats(BaseModel):
    """Index-wide statistics as reported by describe_index_stats."""

    model_config = {"populate_by_name": True}

    namespaces: dict[str, NamespaceStats] = {}
    dimension: int = 0
    index_fullness: float = Field(default=0.0, alias="indexFullness")
    total_vector_count: int = Field(default=0, alias="totalVectorCount")
