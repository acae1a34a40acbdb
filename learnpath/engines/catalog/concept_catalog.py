"""
Concept Catalog - per-topic store of learning concepts.

Creation goes through the DuplicateDetector; concepts are never deleted and
only their usage counter changes afterwards.
"""

import uuid
from typing import Iterable, List, NoReturn, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.engines.catalog.duplicate_detector import DuplicateDetector, DuplicateMatch
from learnpath.errors import ConceptNotFound, DuplicateConcept
from learnpath.kernel.events.event_store import EventStore
from learnpath.kernel.models.base import normalize_title
from learnpath.kernel.models.concept import Concept, DEFAULT_COLOR, DEFAULT_ICON
from learnpath.kernel.models.event_log import EventType
from learnpath.logging_config import get_logger

logger = get_logger(__name__)


class ConceptCatalog:
    """Service for creating, listing and counting usage of concepts."""

    def __init__(self, session: AsyncSession, detector: Optional[DuplicateDetector] = None):
        self.session = session
        self.detector = detector
        self.event_store = EventStore(session)

    async def create_concept(
        self,
        topic_id: int,
        title: str,
        description: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Concept:
        """
        Create a concept unless it duplicates an existing one in the topic.

        A concurrent create of the same title that commits first makes the
        insert fail on the unique index; the session transaction is then
        rolled back and the winning row is reported as the duplicate.

        Raises:
            ValueError: blank title
            DuplicateConcept: the detector matched an existing concept
            DuplicateCheckUnavailable: the detector could not decide
        """
        clean_title = (title or "").strip()
        if not clean_title:
            raise ValueError("Concept title must not be blank")
        if self.detector is None:
            raise RuntimeError("ConceptCatalog needs a DuplicateDetector to create concepts")

        existing = await self.list_concepts(topic_id)
        match = await self.detector.find_duplicate(clean_title, description, existing)
        if match is not None:
            await self._reject(topic_id, clean_title, match, created_by)

        concept = Concept(
            topic_id=topic_id,
            title=clean_title,
            normalized_title=normalize_title(clean_title),
            description=(description or "").strip() or None,
            icon=icon or DEFAULT_ICON,
            color=color or DEFAULT_COLOR,
            usage_count=0,
            created_by=created_by,
        )
        self.session.add(concept)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            winner = await self._find_by_title(topic_id, clean_title)
            if winner is None:
                raise
            match = DuplicateMatch(
                reason=f'A concept named "{winner.title}" already exists in this topic',
                existing=winner,
            )
            await self._reject(topic_id, clean_title, match, created_by)
        await self.session.refresh(concept)

        await self.event_store.log(
            event_type=EventType.CONCEPT_CREATED,
            entity_type="concept",
            entity_id=concept.id,
            user_id=created_by,
            payload={"topic_id": topic_id, "title": concept.title},
        )
        logger.info("Concept created", extra={"topic_id": topic_id, "concept_id": str(concept.id)})
        return concept

    async def _reject(
        self,
        topic_id: int,
        candidate: str,
        match: DuplicateMatch,
        created_by: Optional[str],
    ) -> NoReturn:
        logger.info(
            "Concept creation rejected as duplicate",
            extra={"topic_id": topic_id, "candidate": candidate, "reason": match.reason},
        )
        if match.existing is not None:
            await self.event_store.log(
                event_type=EventType.CONCEPT_DUPLICATE_REJECTED,
                entity_type="concept",
                entity_id=match.existing.id,
                user_id=created_by,
                payload={"candidate": candidate, "reason": match.reason},
            )
        raise DuplicateConcept(match.reason, match.existing)

    async def _find_by_title(self, topic_id: int, title: str) -> Optional[Concept]:
        result = await self.session.execute(
            select(Concept).where(
                Concept.topic_id == topic_id,
                Concept.normalized_title == normalize_title(title),
            )
        )
        return result.scalar_one_or_none()

    async def list_concepts(self, topic_id: int, search: Optional[str] = None) -> List[Concept]:
        """Concepts of a topic, most used first."""
        query = select(Concept).where(Concept.topic_id == topic_id)
        if search and search.strip():
            query = query.where(Concept.normalized_title.contains(normalize_title(search)))
        query = query.order_by(Concept.usage_count.desc(), Concept.title)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_concept(self, concept_id: uuid.UUID) -> Concept:
        concept = await self.session.get(Concept, concept_id)
        if concept is None:
            raise ConceptNotFound(f"Concept {concept_id} not found")
        return concept

    async def get_many(self, concept_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, Concept]:
        ids = set(concept_ids)
        if not ids:
            return {}
        result = await self.session.execute(select(Concept).where(Concept.id.in_(ids)))
        found = {c.id: c for c in result.scalars().all()}
        missing = ids - found.keys()
        if missing:
            raise ConceptNotFound(
                "Unknown concept id(s): " + ", ".join(sorted(str(m) for m in missing))
            )
        return found

    async def increment_usage(self, concept_ids: Sequence[uuid.UUID]) -> None:
        """Count one more placement for each distinct concept."""
        distinct = set(concept_ids)
        if not distinct:
            return
        await self.session.execute(
            update(Concept)
            .where(Concept.id.in_(distinct))
            .values(usage_count=Concept.usage_count + 1)
            .execution_options(synchronize_session="fetch")
        )
