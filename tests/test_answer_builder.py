"""Tests for template answers."""

import pytest

from services.brain.AnswerBuilder import AnswerBuilder
from shared.models.results import SearchSource


@pytest.fixture
def builder() -> AnswerBuilder:
    return AnswerBuilder()


def source(id: str, content: str, score: float = 0.5) -> SearchSource:
    return SearchSource(id=id, content=content, score=score)


class TestAnswerBuilder:
    def test_no_sources(self, builder):
        assert builder.build("kangaroo facts", []) == 'I couldn\'t find relevant information for "kangaroo facts" in my knowledge base.'

    @pytest.mark.parametrize("score, percent", [(0.876, 88), (0.875, 88), (0.874, 87), (1.0, 100), (0.3, 30)])
    def test_default_rounds_top_score(self, builder, score, percent):
        answer = builder.build("q", [source("a", "Alpha", score), source("b", "Beta", 0.2)])
        assert answer == f"Found 2 relevant items. Top result ({percent}% match): Alpha..."

    def test_default_truncates_top_content(self, builder):
        answer = builder.build("q", [source("a", "x" * 500, 0.9)])
        assert answer == "Found 1 relevant items. Top result (90% match): " + "x" * 300 + "..."

    def test_summary(self, builder):
        answer = builder.build("q", [source("a", "Alpha"), source("b", "Beta")], "summary")
        assert answer == "Based on 2 relevant sources: Alpha\n\nBeta..."

    def test_summary_truncates_context(self, builder):
        answer = builder.build("q", [source("a", "y" * 300)], "summary")
        assert answer == "Based on 1 relevant sources: " + "y" * 200 + "..."

    def test_detailed(self, builder):
        answer = builder.build("budget", [source("a", "Alpha"), source("b", "Beta")], "detailed")
        assert answer == "Query: budget\n\nDetailed analysis based on 2 sources:\n\nAlpha\n\nBeta"

    def test_meeting_answer(self, builder):
        sources = [
            source("meeting_12", "Sprint retro, action items assigned."),
            source("meeting_7", "Quarterly planning " + "z" * 120),
            source("notes", "Unnumbered notes"),
        ]
        answer = builder.build("What happened in meeting id 12?", sources)
        assert answer == (
            "Meeting 12 Discussion:\n\n"
            "What was discussed: Sprint retro, action items assigned.\n\n"
            "Related meetings with similar topics:\n"
            f"- Meeting 7: {('Quarterly planning ' + 'z' * 120)[:100]}...\n"
            "- Meeting notes: Unnumbered notes...\n"
        )

    def test_meeting_matched_by_content_marker(self, builder):
        sources = [source("rec-a", "Recording meeting_id_5 transcript")]
        answer = builder.build("meeting_id_5", sources)
        assert answer == "Meeting 5 Discussion:\n\nWhat was discussed: Recording meeting_id_5 transcript\n\n"

    def test_meeting_without_target_falls_back_to_style(self, builder):
        answer = builder.build("meeting id 99", [source("meeting_1", "Other", 0.5)])
        assert answer.startswith("Found 1 relevant items.")
