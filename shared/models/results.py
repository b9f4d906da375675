"""Pydantic models returned by BrainService operations."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.models.entity import Entity


class SearchStrategy(str, Enum):
    DIRECT_LOOKUP = "direct_lookup"
    TYPE_FILTER = "type_filter"
    SEMANTIC_REMOTE = "semantic_search_remote"
    SEMANTIC_KV = "semantic_search_kv"
    CACHED = "cached_semantic"
    ERROR = "error"


class SearchSource(BaseModel):
    """One ranked source backing an answer."""

    id: str
    content: str
    score: float
    metadata: dict[str, Any] | None = None


class QueryResult(BaseModel):
    """Result of a read: a synthesized answer plus its ranked sources."""

    answer: str
    sources: list[SearchSource] = []
    confidence: float = 0.0
    strategy: SearchStrategy
    metadata: dict[str, Any] | None = None


class CRUDResult(BaseModel):
    """Result of a single create, update, delete or get."""

    success: bool
    message: str
    data: Entity | None = None
    metadata: dict[str, Any] | None = None


class BatchSummary(BaseModel):
    total: int
    successful: int
    failed: int
    errors: list[str] = []


class BatchResult(BaseModel):
    """Per-item results of a bulk operation with an aggregate summary."""

    success: bool
    message: str
    results: list[CRUDResult]
    summary: BatchSummary

    @classmethod
    def from_results(cls, operation: str, results: list[CRUDResult]) -> "BatchResult":
        failed = [r for r in results if not r.success]
        return cls(
            success=not failed,
            message=f"Bulk {operation}: {len(results) - len(failed)} of {len(results)} succeeded",
            results=results,
            summary=BatchSummary(
                total=len(results),
                successful=len(results) - len(failed),
                failed=len(failed),
                errors=[r.message for r in failed],
            ),
        )


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class RecentActivity(_CamelModel):
    created: int = 0
    updated: int = 0
    deleted: int = 0
    timeframe: str = "last_24_hours"


class IndexingStatus(_CamelModel):
    indexed: int = 0
    pending: int = 0
    failed: int = 0


class StorageUsage(_CamelModel):
    total_size: int = 0
    average_size: int = 0
    largest_entity: str = ""


class BrainAnalytics(_CamelModel):
    """Aggregate store statistics.

    Above the sampling threshold only a prefix sample of entities is read
    and every count is extrapolated by total / sample_size, so the numbers
    are estimates. `sampled` tells callers which case applies.
    """

    total_entities: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    recent_activity: RecentActivity = Field(default_factory=RecentActivity)
    indexing_status: IndexingStatus = Field(default_factory=IndexingStatus)
    storage_usage: StorageUsage = Field(default_factory=StorageUsage)
    sample_size: int = 0
    sampled: bool = False
    generated_at: int = 0


class AgentTool(BaseModel):
    """Tool descriptor handed to an LLM agent: a name plus a JSON-schema of its parameters."""

    name: str
    description: str
    parameters: dict[str, Any]
