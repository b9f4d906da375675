"""Pydantic models for read queries and their options.

A read query is either free text or an entity filter object. The shape is
decided once at the boundary by parse_query(); the strategy ladder in
BrainService only ever sees one of the two variants.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.exceptions import ValidationError

DEFAULT_SEARCH_TERM = "general search"


class TextQuery(BaseModel):
    """Free-text query resolved by semantic search."""

    text: str


class EntityQuery(BaseModel):
    """Filter-object query: direct id lookup, then type listing, then semantic search."""

    id: str | None = None
    type: str | None = None
    filters: dict[str, Any] = Field(default_factory=dict)

    def search_text(self) -> str:
        """Free text used when neither the id nor the type resolved anything."""
        term = self.filters.get("searchTerm")
        return term if isinstance(term, str) and term else DEFAULT_SEARCH_TERM


BrainQuery = TextQuery | EntityQuery


def parse_query(raw: "str | dict | BrainQuery") -> BrainQuery:
    """Turn caller input into a query variant.

    Args:
        raw: A string, a filter mapping, or an already-built query.

    Returns:
        BrainQuery: TextQuery for strings, EntityQuery for mappings.

    Raises:
        ValidationError: For any other input shape.
    """
    if isinstance(raw, (TextQuery, EntityQuery)):
        return raw
    if isinstance(raw, str):
        return TextQuery(text=raw)
    if isinstance(raw, dict):
        return EntityQuery.model_validate(raw)
    raise ValidationError(f"Unsupported query type: {type(raw).__name__}")


class DateRange(BaseModel):
    """Inclusive [start, end] window over createdAt, in epoch milliseconds."""

    start: int
    end: int


class BrainQueryOptions(BaseModel):
    """Options steering a read. Unset values fall back to engine defaults."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    type: str | None = None
    category: str | None = None
    ids: list[str] | None = None
    user_id: str | None = None
    conversation_id: str | None = None
    date_range: DateRange | None = None
    limit: int | None = None
    threshold: float | None = None
    include_metadata: bool = False
    response_style: Literal["summary", "detailed", "default"] = "default"
