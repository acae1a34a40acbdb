"""
Pytest fixtures for learning path engine tests.
"""

import asyncio
import os
import tempfile
import uuid
from collections import defaultdict
from types import SimpleNamespace
from typing import AsyncGenerator, Dict, Optional, Sequence, Tuple

# Settings are read at import time; point them at a throwaway SQLite file first
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
TEST_DB_PATH = _tmp.name
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["OPENAI_API_KEY"] = ""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.config import get_settings

get_settings.cache_clear()

from learnpath.ai.reasoning import (
    ConceptRef,
    DuplicateVerdict,
    EffortVerdict,
    PathVerdict,
)
from learnpath.database import build_engine, build_session_maker
from learnpath.errors import (
    EstimationUnavailable,
    ReasoningUnavailable,
    ValidationUnavailable,
)
from learnpath.kernel.models import Base


class FakeReasoning:
    """In-process stand-in for the reasoning service with call counters."""

    def __init__(self):
        self.duplicate: Optional[DuplicateVerdict] = None
        self.path_verdicts: Dict[Tuple[str, str], PathVerdict] = {}
        self.default_path = PathVerdict(is_valid=True, reason="Sensible order")
        self.effort: Optional[EffortVerdict] = None
        self.unavailable = False
        self.delay = 0.0
        self.calls: Dict[str, int] = defaultdict(int)

    async def check_duplicate(
        self,
        title: str,
        description: Optional[str],
        existing: Sequence[ConceptRef],
    ) -> DuplicateVerdict:
        self.calls["check_duplicate"] += 1
        if self.unavailable:
            raise ReasoningUnavailable("reasoning service down")
        return self.duplicate or DuplicateVerdict(is_duplicate=False, reason="Distinct concept")

    async def validate_prerequisite(self, from_title: str, to_title: str) -> PathVerdict:
        self.calls["validate_prerequisite"] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.unavailable:
            raise ValidationUnavailable("reasoning service down")
        return self.path_verdicts.get((from_title, to_title), self.default_path)

    async def estimate_effort(self, nodes: Sequence[ConceptRef]) -> EffortVerdict:
        self.calls["estimate_effort"] += 1
        if self.unavailable:
            raise EstimationUnavailable("reasoning service down")
        return self.effort or EffortVerdict()


def concept(title: str, description: Optional[str] = None) -> SimpleNamespace:
    """Concept-shaped object for graph and scheduler tests."""
    return SimpleNamespace(id=uuid.uuid4(), title=title, description=description)


@pytest.fixture
def fake_reasoning() -> FakeReasoning:
    return FakeReasoning()


@pytest.fixture
def make_concept():
    return concept


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Engine on a per-test SQLite file with the full schema."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return build_session_maker(db_engine)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session
        await session.rollback()


def pytest_sessionfinish(session, exitstatus):
    """Clean up temp DB file after test run."""
    try:
        if os.path.exists(TEST_DB_PATH):
            os.unlink(TEST_DB_PATH)
    except OSError:
        pass
