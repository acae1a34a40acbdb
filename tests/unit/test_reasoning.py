"""Unit tests for the OpenAI-backed reasoning service."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from learnpath.ai.reasoning import ConceptRef, ReasoningService
from learnpath.errors import (
    EstimationUnavailable,
    ReasoningUnavailable,
    ValidationUnavailable,
)


def _completion(content):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(create):
    client = MagicMock()
    client.chat.completions.create = create
    return client


def _service(content=None, side_effect=None, timeout=1.0):
    create = AsyncMock(return_value=_completion(content), side_effect=side_effect)
    return ReasoningService(model="test-model", timeout_seconds=timeout, client=_client(create)), create


class TestConfiguration:

    def test_no_key_means_unconfigured(self):
        assert ReasoningService(api_key="").configured is False
        assert ReasoningService(api_key="sk-your-openai-api-key").configured is False

    @pytest.mark.asyncio
    async def test_unconfigured_call_is_unavailable(self):
        with pytest.raises(ValidationUnavailable):
            await ReasoningService(api_key="").validate_prerequisite("Algebra", "Calculus")


class TestAnswers:

    @pytest.mark.asyncio
    async def test_validate_prerequisite(self):
        service, create = _service(json.dumps({
            "is_valid": False,
            "reason": "Calculus relies on algebra",
            "recommendation": "Swap the order",
        }))

        verdict = await service.validate_prerequisite("Calculus", "Algebra")

        assert verdict.is_valid is False
        assert verdict.recommendation == "Swap the order"
        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["temperature"] == 0
        assert kwargs["response_format"] == {"type": "json_object"}
        assert '"Calculus"  ->  "Algebra"' in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_check_duplicate(self):
        service, create = _service(json.dumps({
            "is_duplicate": True,
            "reason": "Same subject",
            "similar_id": "c-1",
            "similar_title": "Derivatives",
        }))
        existing = [ConceptRef(id="c-1", title="Derivatives")]

        verdict = await service.check_duplicate("Differentiation", None, existing)

        assert verdict.is_duplicate is True
        assert verdict.similar_id == "c-1"
        assert "c-1 | Derivatives" in create.await_args.kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_estimate_effort(self):
        service, _ = _service(json.dumps({
            "nodes": [{"node_id": "1", "hours": 4, "description": "Work problems"}],
            "suggested_daily_hours": 2,
        }))
        verdict = await service.estimate_effort([ConceptRef(id="1", title="Algebra")])
        assert verdict.nodes[0].hours == 4
        assert verdict.suggested_daily_hours == 2


class TestFailures:

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow(**kwargs):
            await asyncio.sleep(1)
            return _completion("{}")

        service = ReasoningService(timeout_seconds=0.01, client=_client(slow))
        with pytest.raises(ValidationUnavailable):
            await service.validate_prerequisite("Algebra", "Calculus")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        request = httpx.Request("POST", "https://api.openai.test")
        service, _ = _service(side_effect=httpx.ConnectError("down", request=request))
        with pytest.raises(ReasoningUnavailable):
            await service.check_duplicate("A", None, [ConceptRef(id="1", title="B")])

    @pytest.mark.asyncio
    async def test_non_json_answer(self):
        service, _ = _service("Sure! Algebra comes first.")
        with pytest.raises(ValidationUnavailable):
            await service.validate_prerequisite("Algebra", "Calculus")

    @pytest.mark.asyncio
    async def test_ill_typed_answer(self):
        service, _ = _service(json.dumps({"nodes": [{"node_id": "1", "hours": -3}]}))
        with pytest.raises(EstimationUnavailable):
            await service.estimate_effort([ConceptRef(id="1", title="Algebra")])

    @pytest.mark.asyncio
    async def test_array_answer(self):
        service, _ = _service(json.dumps([{"is_valid": True}]))
        with pytest.raises(ValidationUnavailable):
            await service.validate_prerequisite("Algebra", "Calculus")
