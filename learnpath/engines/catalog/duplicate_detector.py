"""
Duplicate Detector - gate in front of concept creation.

Exact title matches (after trimming and casefolding) are caught locally so
re-submitting the same title is always rejected, whatever the model thinks.
Everything else goes to the reasoning service; a failed check blocks the
creation instead of guessing.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from learnpath.ai.reasoning import ConceptRef, ReasoningClient
from learnpath.errors import DuplicateCheckUnavailable, ReasoningUnavailable
from learnpath.kernel.models.base import normalize_title
from learnpath.kernel.models.concept import Concept
from learnpath.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class DuplicateMatch:
    """Outcome of a duplicate check. `existing` is None when the model named no usable match."""
    reason: str
    existing: Optional[Concept] = None


class DuplicateDetector:
    """Decides whether a candidate concept duplicates an existing one in its topic."""

    def __init__(self, reasoning: ReasoningClient):
        self.reasoning = reasoning

    async def find_duplicate(
        self,
        title: str,
        description: Optional[str],
        existing: Sequence[Concept],
    ) -> Optional[DuplicateMatch]:
        """
        Return a DuplicateMatch, or None when the candidate is clear.

        Raises:
            DuplicateCheckUnavailable: the reasoning service could not answer
        """
        normalized = normalize_title(title)
        for concept in existing:
            if concept.normalized_title == normalized:
                return DuplicateMatch(
                    reason=f'A concept named "{concept.title}" already exists in this topic',
                    existing=concept,
                )

        if not existing:
            return None

        refs = [
            ConceptRef(id=str(c.id), title=c.title, description=c.description)
            for c in existing
        ]
        try:
            verdict = await self.reasoning.check_duplicate(title, description, refs)
        except ReasoningUnavailable as exc:
            logger.warning(
                "Duplicate check unavailable, blocking creation",
                extra={"candidate": title, "error": str(exc)},
            )
            raise DuplicateCheckUnavailable(str(exc)) from exc

        if not verdict.is_duplicate:
            return None

        match = self._resolve_match(existing, verdict.similar_id, verdict.similar_title)
        reason = verdict.reason or (
            f'"{title}" has the same meaning as "{match.title}"' if match
            else f'"{title}" duplicates an existing concept'
        )
        return DuplicateMatch(reason=reason, existing=match)

    @staticmethod
    def _resolve_match(
        existing: Sequence[Concept],
        similar_id: Optional[str],
        similar_title: Optional[str],
    ) -> Optional[Concept]:
        """Map the model's pointer back onto a real concept, by id then by title."""
        if similar_id:
            for concept in existing:
                if str(concept.id) == similar_id.strip():
                    return concept
        if similar_title:
            wanted = normalize_title(similar_title)
            for concept in existing:
                if concept.normalized_title == wanted:
                    return concept
        return None
