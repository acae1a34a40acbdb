"""Unit tests for saving, loading and planning workflows."""

import asyncio
import uuid
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from learnpath.ai.reasoning import PathVerdict
from learnpath.config import Settings
from learnpath.engines.calendar.calendar_publisher import CalendarPublisher
from learnpath.engines.catalog.concept_catalog import ConceptCatalog
from learnpath.engines.catalog.duplicate_detector import DuplicateDetector
from learnpath.engines.graph.edge_validation import EdgeValidationEngine
from learnpath.engines.graph.validation_cache import InMemoryValidationCache
from learnpath.engines.planning.effort_estimator import EffortEstimator
from learnpath.engines.workflows.planner import WorkflowPlanner
from learnpath.engines.workflows.repository import EdgeInput, WorkflowRepository
from learnpath.errors import (
    AlreadyPublished,
    AlreadyStarred,
    AuthRequired,
    DuplicateEdgeError,
    PartialPublish,
    SelfLoopError,
    WorkflowNotFound,
    WorkflowPermissionDenied,
)
from learnpath.kernel.events.event_store import EventStore
from learnpath.kernel.models.workflow import PublishStatus, ValidationStatus


@pytest_asyncio.fixture
async def concepts(db_session, fake_reasoning):
    catalog = ConceptCatalog(db_session, DuplicateDetector(fake_reasoning))
    created = {}
    for title in ("Algebra", "Calculus", "Statistics"):
        created[title] = await catalog.create_concept(7, title)
    return created


@pytest.fixture
def repository(db_session):
    return WorkflowRepository(db_session)


@pytest.fixture
def engine(fake_reasoning):
    return EdgeValidationEngine(fake_reasoning, InMemoryValidationCache())


def _positions(*concepts):
    return {str(c.id): {"x": 100.0 * i, "y": 0.0} for i, c in enumerate(concepts)}


async def _save(repository, engine, concepts, user_id="owner", is_draft=False):
    algebra, calculus, stats = concepts["Algebra"], concepts["Calculus"], concepts["Statistics"]
    graph = await repository.build_graph(
        7,
        [EdgeInput(algebra.id, calculus.id), EdgeInput(calculus.id, stats.id)],
        _positions(algebra, calculus, stats),
        validator=engine,
    )
    return await repository.save(7, "Math track", graph, user_id=user_id, is_draft=is_draft)


class TestSave:

    @pytest.mark.asyncio
    async def test_save_validates_and_persists(self, repository, engine, concepts, fake_reasoning):
        fake_reasoning.path_verdicts[("Calculus", "Statistics")] = PathVerdict(
            is_valid=False, reason="Statistics needs probability", recommendation="Add Probability",
        )

        workflow = await _save(repository, engine, concepts)

        assert workflow.title == "Math track"
        assert [e.position for e in workflow.edges] == [0, 1]
        first, second = workflow.edges
        assert first.source_node.title == "Algebra"
        assert first.validation_status == ValidationStatus.VALID
        assert second.validation_status == ValidationStatus.INVALID
        assert second.recommendation == "Add Probability"
        assert list(workflow.node_positions) == [str(c.id) for c in concepts.values()]

    @pytest.mark.asyncio
    async def test_usage_counts_incremented_once_per_concept(self, repository, engine, concepts, db_session):
        await _save(repository, engine, concepts)
        catalog = ConceptCatalog(db_session)
        usage = {c.title: c.usage_count for c in await catalog.list_concepts(7)}
        assert usage == {"Algebra": 1, "Calculus": 1, "Statistics": 1}

    @pytest.mark.asyncio
    async def test_client_verdict_kept(self, repository, engine, concepts, fake_reasoning):
        algebra, calculus = concepts["Algebra"], concepts["Calculus"]
        graph = await repository.build_graph(
            7,
            [EdgeInput(algebra.id, calculus.id, is_valid=True, validation_reason="Checked in editor")],
            {},
            validator=engine,
        )
        assert graph.edges[0].validation.reason == "Checked in editor"
        assert fake_reasoning.calls["validate_prerequisite"] == 0

    @pytest.mark.asyncio
    async def test_graph_invariants_enforced(self, repository, engine, concepts):
        algebra, calculus = concepts["Algebra"], concepts["Calculus"]
        with pytest.raises(SelfLoopError):
            await repository.build_graph(7, [EdgeInput(algebra.id, algebra.id)], {}, validator=engine)
        with pytest.raises(DuplicateEdgeError):
            await repository.build_graph(
                7,
                [EdgeInput(algebra.id, calculus.id), EdgeInput(algebra.id, calculus.id)],
                {},
                validator=engine,
            )

    @pytest.mark.asyncio
    async def test_concepts_must_belong_to_topic(self, repository, engine, concepts):
        with pytest.raises(ValueError):
            await repository.build_graph(
                8, [EdgeInput(concepts["Algebra"].id, concepts["Calculus"].id)], {}, validator=engine,
            )

    @pytest.mark.asyncio
    async def test_fork_records_origin(self, repository, engine, concepts):
        original = await _save(repository, engine, concepts)
        graph = await repository.load_graph(original)

        fork = await repository.save(7, "My copy", graph, user_id="someone-else", forked_from_id=original.id)

        assert fork.forked_from_id == original.id
        assert len(fork.edges) == 2
        assert fork.edges[0].validation_status == ValidationStatus.VALID


class TestAccess:

    @pytest.mark.asyncio
    async def test_draft_hidden_from_others(self, repository, engine, concepts):
        draft = await _save(repository, engine, concepts, is_draft=True)

        assert (await repository.get(draft.id, viewer_id="owner")).id == draft.id
        with pytest.raises(WorkflowNotFound):
            await repository.get(draft.id, viewer_id="stranger")
        assert await repository.list_public(topic_id=7) == []
        assert [w.id for w in await repository.list_for_user("owner")] == [draft.id]

    @pytest.mark.asyncio
    async def test_only_owner_updates(self, repository, engine, concepts):
        workflow = await _save(repository, engine, concepts)
        with pytest.raises(WorkflowPermissionDenied):
            await repository.update(workflow.id, "stranger", title="Hijacked")

    @pytest.mark.asyncio
    async def test_update_replaces_graph(self, repository, engine, concepts, db_session):
        workflow = await _save(repository, engine, concepts, is_draft=True)
        algebra, stats = concepts["Algebra"], concepts["Statistics"]
        graph = await repository.build_graph(
            7, [EdgeInput(algebra.id, stats.id)], _positions(algebra, stats), validator=engine,
        )

        updated = await repository.update(workflow.id, "owner", is_draft=False, graph=graph)

        assert updated.is_draft is False
        assert [(e.source_node.title, e.target_node.title) for e in updated.edges] == [
            ("Algebra", "Statistics"),
        ]
        assert set(updated.node_positions) == {str(algebra.id), str(stats.id)}

    @pytest.mark.asyncio
    async def test_delete_logs_event(self, repository, engine, concepts, db_session):
        workflow = await _save(repository, engine, concepts)
        await repository.delete(workflow.id, "owner")
        await db_session.flush()

        with pytest.raises(WorkflowNotFound):
            await repository.get(workflow.id, viewer_id="owner")
        history = await EventStore(db_session).get_entity_history("workflow", workflow.id)
        assert sorted(e.event_type for e in history) == ["workflow.deleted", "workflow.saved"]


class TestStars:

    @pytest.mark.asyncio
    async def test_star_counts_once_per_user(self, repository, engine, concepts, db_session):
        workflow = await _save(repository, engine, concepts)

        starred = await repository.star(workflow.id, "fan")
        assert starred.star_count == 1
        with pytest.raises(AlreadyStarred):
            await repository.star(workflow.id, "fan")
        assert (await repository.star(workflow.id, "second fan")).star_count == 2

        assert await repository.starred_by("fan", [workflow.id]) == {workflow.id}
        assert await repository.starred_by("stranger", [workflow.id]) == set()
        history = await EventStore(db_session).get_entity_history("workflow", workflow.id)
        assert [e.event_type for e in history].count("workflow.starred") == 2

    @pytest.mark.asyncio
    async def test_owner_cannot_star(self, repository, engine, concepts):
        workflow = await _save(repository, engine, concepts)
        with pytest.raises(WorkflowPermissionDenied):
            await repository.star(workflow.id, "owner")
        assert (await repository.get(workflow.id)).star_count == 0

    @pytest.mark.asyncio
    async def test_drafts_cannot_be_starred_by_others(self, repository, engine, concepts):
        draft = await _save(repository, engine, concepts, is_draft=True)
        with pytest.raises(WorkflowNotFound):
            await repository.star(draft.id, "fan")


def _calendar(handler):
    settings = Settings(calendar_api_base="https://calendar.test/v3", calendar_id="primary")
    return CalendarPublisher(settings, transport=httpx.MockTransport(handler))


class TestPlanner:

    @pytest.mark.asyncio
    async def test_plan_orders_by_prerequisites(self, repository, engine, concepts, fake_reasoning):
        workflow = await _save(repository, engine, concepts)
        planner = WorkflowPlanner(repository, EffortEstimator(fake_reasoning))

        planned = await planner.plan(workflow, date(2026, 5, 4), daily_hours=4)

        titles = [b.node_title for b in planned.schedule.blocks]
        assert titles == ["Algebra", "Calculus", "Statistics"]
        assert planned.schedule.total_hours == 6.0
        assert planned.estimate.source == "heuristic"

    @pytest.mark.asyncio
    async def test_implement_marks_published(self, repository, engine, concepts, fake_reasoning):
        workflow = await _save(repository, engine, concepts)
        created = []

        def handler(request):
            created.append(request)
            return httpx.Response(200, json={"id": f"evt-{len(created)}"})

        planner = WorkflowPlanner(repository, EffortEstimator(fake_reasoning), _calendar(handler))
        planned, result = await planner.implement(
            workflow, "token", date(2026, 5, 4), daily_hours=2, user_id="owner",
        )

        assert result.created_count == 3
        assert result.event_ids == ["evt-1", "evt-2", "evt-3"]
        assert workflow.publish_status == PublishStatus.PUBLISHED
        assert workflow.published_event_count == 3

        with pytest.raises(AlreadyPublished):
            await planner.implement(workflow, "token", date(2026, 5, 4), user_id="owner")
        assert len(created) == 3

    @pytest.mark.asyncio
    async def test_partial_publish_recorded(self, repository, engine, concepts, fake_reasoning):
        workflow = await _save(repository, engine, concepts)
        calls = []
        outage = {"remaining": 1}

        def handler(request):
            calls.append(request)
            if len(calls) == 2 and outage["remaining"]:
                outage["remaining"] -= 1
                return httpx.Response(500, json={"error": "backend"})
            return httpx.Response(200, json={"id": f"evt-{len(calls)}"})

        planner = WorkflowPlanner(repository, EffortEstimator(fake_reasoning), _calendar(handler))
        with pytest.raises(PartialPublish) as exc_info:
            await planner.implement(workflow, "token", date(2026, 5, 4), user_id="owner")

        assert exc_info.value.created_count == 1
        assert exc_info.value.failed_at["index"] == 1
        assert workflow.publish_status == PublishStatus.PARTIAL

        # A forced retry publishes everything again
        calls.clear()
        _, result = await planner.implement(
            workflow, "token", date(2026, 5, 4), user_id="owner", force=True,
        )
        assert result.created_count == 3
        assert workflow.publish_status == PublishStatus.PUBLISHED


class TestPublishClaim:
    """Only one implement at a time may create calendar events."""

    @pytest.mark.asyncio
    async def test_concurrent_implements_publish_once(
        self, repository, engine, concepts, fake_reasoning, db_session, session_maker,
    ):
        workflow = await _save(repository, engine, concepts)
        await db_session.commit()
        created = []

        async def handler(request):
            await asyncio.sleep(0.01)
            created.append(request)
            return httpx.Response(200, json={"id": f"evt-{len(created)}"})

        loaded = {"count": 0}
        both_loaded = asyncio.Event()

        async def implement():
            async with session_maker() as session:
                repo = WorkflowRepository(session)
                own = await repo.get(workflow.id)
                loaded["count"] += 1
                if loaded["count"] == 2:
                    both_loaded.set()
                await both_loaded.wait()

                planner = WorkflowPlanner(repo, EffortEstimator(fake_reasoning), _calendar(handler))
                try:
                    _, result = await planner.implement(
                        own, "token", date(2026, 5, 4), daily_hours=2, user_id="owner",
                    )
                except AlreadyPublished:
                    await session.rollback()
                    return None
                await session.commit()
                return result.created_count

        outcomes = await asyncio.gather(implement(), implement())

        assert sorted(outcomes, key=lambda o: o is None) == [3, None]
        assert len(created) == 3
        async with session_maker() as session:
            stored = await WorkflowRepository(session).get(workflow.id)
            assert stored.publish_status == PublishStatus.PUBLISHED.value
            assert stored.publish_claimed_at is None

    @pytest.mark.asyncio
    async def test_auth_failure_releases_claim(
        self, repository, engine, concepts, fake_reasoning, session_maker,
    ):
        workflow = await _save(repository, engine, concepts)
        planner = WorkflowPlanner(
            repository,
            EffortEstimator(fake_reasoning),
            _calendar(lambda request: httpx.Response(401, json={"error": "invalid_token"})),
        )

        with pytest.raises(AuthRequired):
            await planner.implement(workflow, None, date(2026, 5, 4), user_id="owner")
        with pytest.raises(AuthRequired):
            await planner.implement(workflow, "expired", date(2026, 5, 4), user_id="owner")

        assert workflow.publish_status == PublishStatus.NOT_PUBLISHED
        async with session_maker() as session:
            stored = await WorkflowRepository(session).get(workflow.id)
            assert stored.publish_status == PublishStatus.NOT_PUBLISHED.value

    @pytest.mark.asyncio
    async def test_force_takes_over_only_stale_claims(
        self, repository, engine, concepts, fake_reasoning, db_session,
    ):
        workflow = await _save(repository, engine, concepts)
        created = []

        def handler(request):
            created.append(request)
            return httpx.Response(200, json={"id": f"evt-{len(created)}"})

        planner = WorkflowPlanner(
            repository,
            EffortEstimator(fake_reasoning),
            _calendar(handler),
            claim_timeout=timedelta(minutes=10),
        )

        workflow.publish_status = PublishStatus.PUBLISHING
        workflow.publish_claimed_at = datetime.now(timezone.utc)
        await db_session.commit()

        with pytest.raises(AlreadyPublished):
            await planner.implement(workflow, "token", date(2026, 5, 4), user_id="owner")
        with pytest.raises(AlreadyPublished):
            await planner.implement(workflow, "token", date(2026, 5, 4), user_id="owner", force=True)
        assert created == []

        workflow.publish_claimed_at = datetime.now(timezone.utc) - timedelta(hours=1)
        await db_session.commit()

        _, result = await planner.implement(
            workflow, "token", date(2026, 5, 4), user_id="owner", force=True,
        )
        assert result.created_count == 3
        assert workflow.publish_status == PublishStatus.PUBLISHED
