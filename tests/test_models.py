"""Tests for entity, query and result models."""

import pytest

from shared.exceptions import ValidationError
from shared.models.entity import Entity, EntityInput, EntityMetadata
from shared.models.query import DEFAULT_SEARCH_TERM, BrainQueryOptions, EntityQuery, TextQuery, parse_query
from shared.models.results import BatchResult, CRUDResult


class TestEntityMetadata:
    def test_unknown_keys_go_to_extra(self):
        meta = EntityMetadata.from_mapping({"category": "work", "userId": "u1", "mood": "happy"})
        assert meta.category == "work"
        assert meta.user_id == "u1"
        assert meta.extra == {"mood": "happy"}

    def test_to_mapping_flattens_extra(self):
        meta = EntityMetadata.from_mapping({"category": "work", "mood": "happy", "embedding": [0.1]})
        assert meta.to_mapping() == {"mood": "happy", "category": "work", "indexed": False, "tags": [], "embedding": [0.1]}
        assert "embedding" not in meta.to_mapping(include_embedding=False)

    def test_user_mapping_drops_system_keys(self):
        meta = EntityMetadata.from_user_mapping({"version": 7, "indexed": True, "storedAt": 1, "status": "draft"})
        assert meta.version is None
        assert meta.indexed is False
        assert meta.stored_at is None
        assert meta.extra == {}
        assert meta.status == "draft"

    @pytest.mark.parametrize("mapping", [{"priority": 3}, {"tags": "urgent"}, {"userId": 42}, {"expiresAt": "tomorrow"}])
    def test_user_mapping_rejects_mistyped_known_fields(self, mapping):
        with pytest.raises(ValidationError, match="Invalid metadata field"):
            EntityMetadata.from_user_mapping(mapping)

    def test_merge_only_overrides_set_fields(self):
        base = EntityMetadata.from_mapping({"category": "work", "status": "open", "a": 1})
        merged = base.merged_with(EntityMetadata.from_user_mapping({"status": "done", "b": 2}))
        assert merged.category == "work"
        assert merged.status == "done"
        assert merged.extra == {"a": 1, "b": 2}
        assert base.status == "open"


class TestEntity:
    def test_record_round_trip_keeps_extra(self):
        entity = Entity(id="a", content="x", type="note", metadata=EntityMetadata.from_mapping({"version": 2, "custom": True}))
        record = entity.to_record()
        assert record["metadata"]["custom"] is True
        assert Entity.from_record(record) == entity

    @pytest.mark.parametrize("payload", [{"content": "x", "type": "t"}, {"id": "a", "type": "t"}, {"id": "a", "content": "x"}])
    def test_ensure_required(self, payload):
        with pytest.raises(ValidationError, match="Missing required fields: id, content, type"):
            EntityInput.model_validate(payload).ensure_required()


class TestParseQuery:
    def test_string_is_text_query(self):
        assert parse_query("budget") == TextQuery(text="budget")

    def test_mapping_is_entity_query(self):
        query = parse_query({"id": "a", "type": "note", "filters": {"searchTerm": "budget"}})
        assert isinstance(query, EntityQuery)
        assert query.search_text() == "budget"

    def test_default_search_term(self):
        assert parse_query({"type": "note"}).search_text() == DEFAULT_SEARCH_TERM

    @pytest.mark.parametrize("raw", [42, None, ["budget"]])
    def test_unsupported_shapes(self, raw):
        with pytest.raises(ValidationError):
            parse_query(raw)


class TestQueryOptions:
    def test_camel_case_aliases(self):
        options = BrainQueryOptions.model_validate(
            {"includeMetadata": True, "responseStyle": "summary", "userId": "u1", "dateRange": {"start": 1, "end": 2}}
        )
        assert options.include_metadata is True
        assert options.response_style == "summary"
        assert options.user_id == "u1"
        assert options.date_range.end == 2


class TestBatchResult:
    def test_summary_counts(self):
        results = [
            CRUDResult(success=True, message="ok"),
            CRUDResult(success=False, message="boom"),
            CRUDResult(success=True, message="ok"),
        ]
        batch = BatchResult.from_results("create", results)
        assert batch.success is False
        assert batch.message == "Bulk create: 2 of 3 succeeded"
        assert batch.summary.model_dump() == {"total": 3, "successful": 2, "failed": 1, "errors": ["boom"]}

    def test_empty_batch_succeeds(self):
        batch = BatchResult.from_results("delete", [])
        assert batch.success is True
        assert batch.summary.total == 0
