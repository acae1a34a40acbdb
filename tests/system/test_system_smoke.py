"""
System smoke test: full API flow in-process with SQLite.
Covers concepts, validation, estimation, workflows, scheduling and calendar
implementation. The reasoning service and calendar API are faked; the
database is the temp file configured in conftest.
"""

import random
import uuid

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from learnpath.api.deps import get_calendar_publisher, get_reasoning_service
from learnpath.config import get_settings
from learnpath.database import init_db
from learnpath.engines.calendar.calendar_publisher import CalendarPublisher
from learnpath.main import app


class CalendarStub:
    """MockTransport handler that can be told to reject tokens."""

    def __init__(self):
        self.requests = []
        self.reject = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.reject:
            return httpx.Response(401, json={"error": "invalid_token"})
        self.requests.append(request)
        return httpx.Response(200, json={"id": f"evt-{len(self.requests)}"})


@pytest.fixture
def calendar():
    return CalendarStub()


@pytest_asyncio.fixture
async def client(fake_reasoning, calendar):
    """Async client with faked collaborators and rate limit disabled."""
    await init_db()

    app.dependency_overrides[get_reasoning_service] = lambda: fake_reasoning
    app.dependency_overrides[get_calendar_publisher] = lambda: CalendarPublisher(
        get_settings(), transport=httpx.MockTransport(calendar),
    )
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def topic_id():
    return random.randint(10_000, 10_000_000)


async def _create_node(client, topic_id, title, **extra):
    r = await client.post("/api/nodes", json={"topic_id": topic_id, "title": title, **extra})
    assert r.status_code == 201, r.text
    return r.json()["data"]


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["ai_configured"] is False
    assert "X-Request-ID" in r.headers


@pytest.mark.asyncio
async def test_concept_creation_and_duplicates(client: AsyncClient, topic_id):
    created = await _create_node(client, topic_id, "Linear Algebra", description="Vectors")
    assert created["usage_count"] == 0
    assert created["title"] == "Linear Algebra"

    r = await client.post("/api/nodes", json={"topic_id": topic_id, "title": "Linear Algebra"})
    assert r.status_code == 409
    body = r.json()
    assert body["isDuplicate"] is True
    assert body["similarNode"]["title"] == "Linear Algebra"
    assert body["similarNode"]["id"] == created["id"]

    await _create_node(client, topic_id, "Calculus")
    r = await client.get(f"/api/nodes/{topic_id}")
    assert r.status_code == 200
    assert {n["title"] for n in r.json()["data"]} == {"Linear Algebra", "Calculus"}

    r = await client.get(f"/api/nodes/{topic_id}", params={"q": "calc"})
    assert [n["title"] for n in r.json()["data"]] == ["Calculus"]


@pytest.mark.asyncio
async def test_duplicate_check_unavailable(client: AsyncClient, fake_reasoning, topic_id):
    await _create_node(client, topic_id, "Algebra")
    fake_reasoning.unavailable = True

    r = await client.post("/api/nodes", json={"topic_id": topic_id, "title": "Geometry"})
    assert r.status_code == 503
    assert r.json()["success"] is False

    r = await client.get(f"/api/nodes/{topic_id}")
    assert [n["title"] for n in r.json()["data"]] == ["Algebra"]


@pytest.mark.asyncio
async def test_validate_path_uses_cache(client: AsyncClient, fake_reasoning):
    pair = {"from_node": f"Algebra {uuid.uuid4().hex[:6]}", "to_node": "Calculus"}

    first = await client.post("/api/validate-path", json=pair)
    second = await client.post("/api/validate-path", json=pair)

    assert first.status_code == 200, first.text
    assert first.json()["fromDatabase"] is False
    assert first.json()["isValid"] is True
    assert second.json()["fromDatabase"] is True
    assert fake_reasoning.calls["validate_prerequisite"] == 1


@pytest.mark.asyncio
async def test_validate_path_fails_open(client: AsyncClient, fake_reasoning):
    fake_reasoning.unavailable = True
    pair = {"fromNode": f"Sets {uuid.uuid4().hex[:6]}", "toNode": "Logic"}

    r = await client.post("/api/validate-path", json=pair)
    again = await client.post("/api/validate-path", json=pair)

    assert r.json()["isValid"] is True
    assert r.json()["reason"] == "Validation unavailable"
    # Nothing was cached, so the second call is not served from the database
    assert again.json()["fromDatabase"] is False


@pytest.mark.asyncio
async def test_estimate_nodes(client: AsyncClient):
    r = await client.post(
        "/api/estimate-nodes",
        json={"nodes": [{"id": "1", "title": "Algebra"}, {"id": "2", "title": "Calculus"}]},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["source"] == "heuristic"
    assert data["totalHours"] == 4.0
    assert data["suggestedDailyHours"] == 2.0
    assert data["totalDays"] == 2
    assert "total_hours" not in data
    assert data["nodes"][0] == {
        "nodeId": "1",
        "nodeTitle": "Algebra",
        "estimatedHours": 2.0,
        "description": "",
    }


@pytest.mark.asyncio
async def test_request_validation_error(client: AsyncClient):
    r = await client.post("/api/nodes", json={"topic_id": "abc"})
    assert r.status_code == 422
    body = r.json()
    assert body["success"] is False
    fields = {e["field"] for e in body["errors"]}
    assert "body.title" in fields


@pytest.mark.asyncio
async def test_workflow_lifecycle(client: AsyncClient, calendar, topic_id):
    algebra = await _create_node(client, topic_id, "Algebra")
    calculus = await _create_node(client, topic_id, "Calculus")
    stats = await _create_node(client, topic_id, "Statistics")
    owner = {"X-User-Id": "owner-1"}

    r = await client.post(
        "/api/workflows",
        headers=owner,
        json={
            "topic_id": topic_id,
            "title": "Math track",
            "edges": [
                {"source_node_id": algebra["id"], "target_node_id": calculus["id"]},
                {"source_node_id": calculus["id"], "target_node_id": stats["id"]},
            ],
            "node_positions": {
                algebra["id"]: {"x": 0, "y": 0},
                calculus["id"]: {"x": 200, "y": 0},
                stats["id"]: {"x": 400, "y": 0},
            },
        },
    )
    assert r.status_code == 201, r.text
    workflow = r.json()["data"]
    wid = workflow["id"]
    assert workflow["user_id"] == "owner-1"
    assert [e["validation_status"] for e in workflow["edges"]] == ["valid", "valid"]
    assert workflow["edges"][0]["source_node"]["title"] == "Algebra"

    r = await client.get(f"/api/nodes/{topic_id}")
    assert {n["usage_count"] for n in r.json()["data"]} == {1}

    r = await client.get("/api/workflows", params={"topic_id": topic_id})
    assert r.status_code == 200
    listing = r.json()
    assert [w["id"] for w in listing["data"]] == [wid]
    assert listing["grouped"][str(topic_id)][0]["edge_count"] == 2

    r = await client.get("/api/workflows/mine", headers=owner)
    assert wid in [w["id"] for w in r.json()["data"]]
    r = await client.get("/api/workflows/mine")
    assert r.status_code == 401

    r = await client.put(f"/api/workflows/{wid}", headers={"X-User-Id": "stranger"}, json={"title": "Mine now"})
    assert r.status_code == 403

    r = await client.put(f"/api/workflows/{wid}", headers=owner, json={"description": "Core math"})
    assert r.status_code == 200
    assert r.json()["data"]["description"] == "Core math"
    assert len(r.json()["data"]["edges"]) == 2

    r = await client.post(
        f"/api/workflows/{wid}/schedule",
        json={"start_date": "2026-11-02", "daily_hours": 3},
    )
    assert r.status_code == 200, r.text
    schedule = r.json()["data"]
    assert [b["node_title"] for b in schedule["blocks"]] == ["Algebra", "Calculus", "Statistics"]
    assert schedule["total_hours"] == 6.0
    assert schedule["estimate"]["totalHours"] == 6.0
    assert [n["nodeTitle"] for n in schedule["estimate"]["nodes"]] == ["Algebra", "Calculus", "Statistics"]
    assert schedule["blocks"][1]["start_offset_hours"] == 2.0
    assert schedule["last_date"] == "2026-11-03"

    r = await client.post(f"/api/workflows/{wid}/implement", headers=owner, json={"start_date": "2026-11-02"})
    assert r.status_code == 401
    assert r.json()["authRequired"] is True

    calendar.reject = True
    r = await client.post(
        f"/api/workflows/{wid}/implement",
        headers=owner,
        json={"supabase_token": "expired", "start_date": "2026-11-02"},
    )
    assert r.status_code == 401
    calendar.reject = False

    r = await client.post(
        f"/api/workflows/{wid}/implement",
        headers=owner,
        json={"access_token": "token", "start_date": "2026-11-02", "daily_hours": 2},
    )
    assert r.status_code == 200, r.text
    assert r.json()["created_count"] == 3
    assert len(calendar.requests) == 3

    r = await client.post(
        f"/api/workflows/{wid}/implement",
        headers=owner,
        json={"access_token": "token", "start_date": "2026-11-02"},
    )
    assert r.status_code == 409
    assert len(calendar.requests) == 3

    r = await client.get(f"/api/workflows/{wid}")
    assert r.json()["data"]["publish_status"] == "published"
    assert r.json()["data"]["published_event_count"] == 3

    r = await client.get(f"/api/workflows/{wid}/history")
    types = {e["event_type"] for e in r.json()["data"]}
    assert {"workflow.saved", "workflow.updated", "workflow.implemented"} <= types

    r = await client.delete(f"/api/workflows/{wid}", headers=owner)
    assert r.status_code == 200
    r = await client.get(f"/api/workflows/{wid}")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_workflow_rejects_self_loop(client: AsyncClient, topic_id):
    algebra = await _create_node(client, topic_id, "Algebra")
    r = await client.post(
        "/api/workflows",
        json={
            "topic_id": topic_id,
            "title": "Loop",
            "edges": [{"source_node_id": algebra["id"], "target_node_id": algebra["id"]}],
        },
    )
    assert r.status_code == 422
    assert r.json()["success"] is False


@pytest.mark.asyncio
async def test_draft_visible_only_to_owner(client: AsyncClient, topic_id):
    algebra = await _create_node(client, topic_id, "Algebra")
    r = await client.post(
        "/api/workflows",
        headers={"X-User-Id": "drafter"},
        json={
            "topic_id": topic_id,
            "title": "Work in progress",
            "is_draft": True,
            "node_positions": {algebra["id"]: {"x": 1, "y": 2}},
        },
    )
    assert r.status_code == 201, r.text
    wid = r.json()["data"]["id"]

    assert (await client.get(f"/api/workflows/{wid}", headers={"X-User-Id": "drafter"})).status_code == 200
    assert (await client.get(f"/api/workflows/{wid}", headers={"X-User-Id": "other"})).status_code == 404
    r = await client.get("/api/workflows", params={"topic_id": topic_id})
    assert r.json()["data"] == []


@pytest.mark.asyncio
async def test_fork_workflow(client: AsyncClient, topic_id):
    algebra = await _create_node(client, topic_id, "Algebra")
    calculus = await _create_node(client, topic_id, "Calculus")
    payload = {
        "topic_id": topic_id,
        "title": "Original",
        "edges": [{"source_node_id": algebra["id"], "target_node_id": calculus["id"]}],
    }
    r = await client.post("/api/workflows", headers={"X-User-Id": "author"}, json=payload)
    original = r.json()["data"]

    fork_payload = dict(payload, title="My fork", forked_from_id=original["id"])
    r = await client.post("/api/workflows", headers={"X-User-Id": "learner"}, json=fork_payload)
    assert r.status_code == 201, r.text
    fork = r.json()["data"]
    assert fork["forked_from_id"] == original["id"]
    assert fork["user_id"] == "learner"


@pytest.mark.asyncio
async def test_star_workflow(client: AsyncClient, topic_id):
    algebra = await _create_node(client, topic_id, "Algebra")
    r = await client.post(
        "/api/workflows",
        headers={"X-User-Id": "author"},
        json={
            "topic_id": topic_id,
            "title": "Starred track",
            "node_positions": {algebra["id"]: {"x": 0, "y": 0}},
        },
    )
    assert r.status_code == 201, r.text
    wid = r.json()["data"]["id"]
    assert r.json()["data"]["star_count"] == 0

    r = await client.post(f"/api/workflows/{wid}/star", headers={"X-User-Id": "fan"})
    assert r.status_code == 200, r.text
    assert r.json()["data"]["star_count"] == 1

    assert (await client.post(f"/api/workflows/{wid}/star", headers={"X-User-Id": "fan"})).status_code == 409
    assert (await client.post(f"/api/workflows/{wid}/star", headers={"X-User-Id": "author"})).status_code == 403
    assert (await client.post(f"/api/workflows/{wid}/star")).status_code == 401

    r = await client.get("/api/workflows", params={"topic_id": topic_id}, headers={"X-User-Id": "fan"})
    [item] = r.json()["data"]
    assert item["star_count"] == 1
    assert item["has_starred"] is True
    r = await client.get("/api/workflows", params={"topic_id": topic_id})
    assert r.json()["data"][0]["has_starred"] is False
