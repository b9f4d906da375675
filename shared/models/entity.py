"""Pydantic models for stored brain entities.

Hierarchy:
  EntityMetadata: typed system fields, typed well-known user fields and one
      open `extra` map for everything else a caller supplies.
  EntityInput: create payload as handed in by a caller.
  EntityPatch: partial update payload.
  Entity: the persisted record.

The storage and wire form is a flat camelCase mapping; `extra` keys are
merged into it next to the named fields.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from shared.exceptions import ValidationError

# keys only the engine may write
SYSTEM_KEYS = frozenset({
    "createdAt",
    "updatedAt",
    "version",
    "previousVersion",
    "indexed",
    "indexedAt",
    "embedding",
    "storedAt",
    "size",
})


class EntityMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    # system fields
    created_at: int | None = None
    updated_at: int | None = None
    version: int | None = None
    previous_version: int | None = None
    indexed: bool = False
    indexed_at: int | None = None
    embedding: list[float] | None = None
    stored_at: int | None = None
    size: int | None = None

    # well-known caller fields
    category: str | None = None
    tags: list[str] = []
    user_id: str | None = None
    status: str | None = None
    priority: str | None = None
    expires_at: int | None = None

    # everything else the caller supplied
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def known_keys(cls) -> set[str]:
        return {field.alias or name for name, field in cls.model_fields.items() if name != "extra"}

    @classmethod
    def from_mapping(cls, mapping: dict[str, Any] | None) -> "EntityMetadata":
        """Build metadata from a flat mapping, routing unknown keys into `extra`."""
        mapping = dict(mapping or {})
        known = cls.known_keys()
        named = {key: value for key, value in mapping.items() if key in known}
        extra = {key: value for key, value in mapping.items() if key not in known}
        return cls.model_validate({**named, "extra": extra})

    @classmethod
    def from_user_mapping(cls, mapping: dict[str, Any] | None) -> "EntityMetadata":
        """Like from_mapping, but drops keys reserved for the engine.

        Raises:
            ValidationError: If a well-known field carries a value of the wrong type.
        """
        mapping = {key: value for key, value in (mapping or {}).items() if key not in SYSTEM_KEYS}
        try:
            return cls.from_mapping(mapping)
        except PydanticValidationError as e:
            fields = ", ".join(sorted({str(error["loc"][0]) for error in e.errors() if error["loc"]}))
            raise ValidationError(f"Invalid metadata field(s): {fields or 'unknown'}") from e

    def to_mapping(self, include_embedding: bool = True) -> dict[str, Any]:
        """Flatten into the camelCase storage form."""
        exclude = {"extra"} if include_embedding else {"extra", "embedding"}
        named = self.model_dump(by_alias=True, exclude_none=True, exclude=exclude)
        return {**self.extra, **named}

    def merged_with(self, patch: "EntityMetadata") -> "EntityMetadata":
        """Shallow merge: every field the patch explicitly set wins."""
        updates = {name: getattr(patch, name) for name in patch.model_fields_set if name != "extra"}
        merged = self.model_copy(update=updates)
        merged.extra = {**self.extra, **patch.extra}
        return merged


class EntityInput(BaseModel):
    """A caller-supplied entity to create."""

    id: str = ""
    content: str = ""
    type: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    def ensure_required(self) -> None:
        """Raise ValidationError unless id, content and type are all present."""
        if not self.id or not self.content or not self.type:
            raise ValidationError("Missing required fields: id, content, type")


class EntityPatch(BaseModel):
    """A partial update. Unset fields keep their stored values."""

    content: str | None = None
    type: str | None = None
    metadata: dict[str, Any] | None = None


class Entity(BaseModel):
    """A stored record: the unit of CRUD, indexing and retrieval."""

    id: str
    content: str
    type: str
    metadata: EntityMetadata = Field(default_factory=EntityMetadata)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "type": self.type,
            "metadata": self.metadata.to_mapping(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Entity":
        return cls(
            id=record["id"],
            content=record["content"],
            type=record["type"],
            metadata=EntityMetadata.from_mapping(record.get("metadata")),
        )
