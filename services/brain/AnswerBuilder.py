"""Template answers over ranked search sources. Deterministic, no model call."""

import math
import re

from shared.models.results import SearchSource

MEETING_PATTERN = re.compile(r"meeting[_\s]*id[_\s]*(\d+)", re.IGNORECASE)
DIGITS = re.compile(r"(\d+)")
MAX_RELATED = 3


class AnswerBuilder:
    def build(self, query: str, sources: list[SearchSource], response_style: str = "default") -> str:
        """Render an answer for query from sources ranked by descending score.

        Args:
            query (str): The free-text query.
            sources (list[SearchSource]): Ranked sources, best first.
            response_style (str): "summary", "detailed" or "default".

        Returns:
            str: The answer text.
        """
        if not sources:
            return f'I couldn\'t find relevant information for "{query}" in my knowledge base.'

        meeting_answer = self._build_meeting_answer(query, sources)
        if meeting_answer is not None:
            return meeting_answer

        context = "\n\n".join(source.content for source in sources)

        if response_style == "summary":
            return f"Based on {len(sources)} relevant sources: {context[:200]}..."

        if response_style == "detailed":
            return f"Query: {query}\n\nDetailed analysis based on {len(sources)} sources:\n\n{context}"

        top = sources[0]
        percent = math.floor(top.score * 100 + 0.5)
        return f"Found {len(sources)} relevant items. Top result ({percent}% match): {top.content[:300]}..."

    def _build_meeting_answer(self, query: str, sources: list[SearchSource]) -> str | None:
        match = MEETING_PATTERN.search(query)
        if match is None:
            return None
        meeting_id = match.group(1)
        target = next(
            (s for s in sources if meeting_id in s.id or f"meeting_id_{meeting_id}" in s.content),
            None,
        )
        if target is None:
            return None

        answer = f"Meeting {meeting_id} Discussion:\n\n"
        answer += f"What was discussed: {target.content}\n\n"

        related = [s for s in sources if s.id != target.id]
        if related:
            answer += "Related meetings with similar topics:\n"
            for source in related[:MAX_RELATED]:
                digits = DIGITS.search(source.id)
                label = digits.group(1) if digits else source.id
                answer += f"- Meeting {label}: {source.content[:100]}...\n"
        return answer
