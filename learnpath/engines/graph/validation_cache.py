"""
Validation Cache - verdicts keyed by the ordered pair of concept titles.

The cache is an explicit dependency of the EdgeValidationEngine rather than
process-global state. Each read or write touches a single key; concurrent
writers of the same key race harmlessly and the last write wins.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from learnpath.kernel.models.validation_record import NodePairValidation


@dataclass
class ValidationRecord:
    from_title: str
    to_title: str
    is_valid: bool
    reason: str
    recommendation: Optional[str] = None
    validated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> Tuple[str, str]:
        return (self.from_title, self.to_title)


class ValidationCache(ABC):
    """Key-value store of prerequisite verdicts. Entries never expire."""

    @abstractmethod
    async def get(self, from_title: str, to_title: str) -> Optional[ValidationRecord]:
        ...

    @abstractmethod
    async def put(self, record: ValidationRecord) -> None:
        ...


class InMemoryValidationCache(ValidationCache):
    """Dict-backed cache for tests and single-process tooling."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], ValidationRecord] = {}

    async def get(self, from_title: str, to_title: str) -> Optional[ValidationRecord]:
        return self._records.get((from_title, to_title))

    async def put(self, record: ValidationRecord) -> None:
        self._records[record.key] = record

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._records


class SqlValidationCache(ValidationCache):
    """
    Cache backed by the node_pair_validations table.

    Opens its own short-lived session per call so it can be used from
    background validation tasks as well as from request handlers.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get(self, from_title: str, to_title: str) -> Optional[ValidationRecord]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(NodePairValidation).where(
                    NodePairValidation.source_name == from_title,
                    NodePairValidation.target_name == to_title,
                )
            )
            row = result.scalar_one_or_none()
        if row is None:
            return None
        return ValidationRecord(
            from_title=row.source_name,
            to_title=row.target_name,
            is_valid=row.is_valid,
            reason=row.reason,
            recommendation=row.recommendation,
            validated_at=row.validated_at,
        )

    async def put(self, record: ValidationRecord) -> None:
        values = {
            "is_valid": record.is_valid,
            "reason": record.reason,
            "recommendation": record.recommendation,
            "validated_at": record.validated_at,
        }
        async with self.session_maker() as session:
            updated = await session.execute(
                update(NodePairValidation)
                .where(
                    NodePairValidation.source_name == record.from_title,
                    NodePairValidation.target_name == record.to_title,
                )
                .values(**values)
            )
            if updated.rowcount:
                await session.commit()
                return

            session.add(NodePairValidation(
                source_name=record.from_title,
                target_name=record.to_title,
                **values,
            ))
            try:
                await session.commit()
            except IntegrityError:
                # Another writer inserted the pair first; overwrite it
                await session.rollback()
                await session.execute(
                    update(NodePairValidation)
                    .where(
                        NodePairValidation.source_name == record.from_title,
                        NodePairValidation.target_name == record.to_title,
                    )
                    .values(**values)
                )
                await session.commit()
