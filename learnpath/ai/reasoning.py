"""
Reasoning Service - OpenAI-backed judgements about concepts.

Three questions are asked of the model, each answered as a JSON object:
  - is a candidate concept a semantic duplicate of an existing one?
  - is "A before B" a pedagogically sound prerequisite relation?
  - how many study hours does each concept in a set need?

The model is treated as a pure function of its inputs (temperature 0).
Timeouts, transport errors, a missing key and malformed answers all surface
as ReasoningUnavailable.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Protocol, Sequence, Type

import httpx
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError

from learnpath.config import Settings, get_settings
from learnpath.errors import EstimationUnavailable, ReasoningUnavailable, ValidationUnavailable
from learnpath.logging_config import get_logger

logger = get_logger(__name__)


class ConceptRef(BaseModel):
    """Minimal view of a concept handed to the model."""

    id: str
    title: str
    description: Optional[str] = None


class DuplicateVerdict(BaseModel):
    is_duplicate: bool
    reason: str = ""
    similar_id: Optional[str] = None
    similar_title: Optional[str] = None


class PathVerdict(BaseModel):
    is_valid: bool
    reason: str = ""
    recommendation: Optional[str] = None


class NodeEffort(BaseModel):
    node_id: str
    hours: float = Field(ge=0)
    description: str = ""


class EffortVerdict(BaseModel):
    nodes: List[NodeEffort] = Field(default_factory=list)
    suggested_daily_hours: Optional[float] = Field(default=None, gt=0)


class ReasoningClient(Protocol):
    """What the engines need from a reasoning backend."""

    async def check_duplicate(
        self,
        title: str,
        description: Optional[str],
        existing: Sequence[ConceptRef],
    ) -> DuplicateVerdict: ...

    async def validate_prerequisite(self, from_title: str, to_title: str) -> PathVerdict: ...

    async def estimate_effort(self, nodes: Sequence[ConceptRef]) -> EffortVerdict: ...


# ── Prompts ──────────────────────────────────────────────────────────────

SYSTEM_PROMPT = (
    "You are a curriculum designer who plans self-study learning paths. "
    "Answer with a single JSON object and nothing else."
)

DUPLICATE_PROMPT = """A learner wants to add a new concept to a topic.

NEW CONCEPT: {title}
DESCRIPTION: {description}

EXISTING CONCEPTS (id | title | description):
{existing}

Decide whether the new concept means the same thing as one of the existing
concepts (synonyms, translations, abbreviations, trivial rewording). Related
or overlapping concepts are NOT duplicates.

Return JSON: {{"is_duplicate": bool, "reason": str, "similar_id": str | null, "similar_title": str | null}}"""

PREREQUISITE_PROMPT = """A learner drew a prerequisite arrow in a learning path:

"{from_title}"  ->  "{to_title}"

meaning "{from_title}" should be learned before "{to_title}".
Judge whether this order is pedagogically sound. Keep the reason to one or
two sentences. When the order is wrong or weak, recommend a better one.

Return JSON: {{"is_valid": bool, "reason": str, "recommendation": str | null}}"""

ESTIMATE_PROMPT = """Estimate the focused study time an average adult learner needs for each
concept below, and a sustainable number of study hours per day for the
whole set.

CONCEPTS (id | title | description):
{concepts}

Return JSON: {{"nodes": [{{"node_id": str, "hours": number, "description": str}}],
"suggested_daily_hours": number}}
where description is one sentence on what to study."""


def _format_concepts(concepts: Sequence[ConceptRef]) -> str:
    return "\n".join(
        f"- {c.id} | {c.title} | {(c.description or '').strip() or '-'}" for c in concepts
    )


class ReasoningService:
    """
    OpenAI chat-completions client for duplicate checks, prerequisite
    validation and effort estimation.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        timeout_seconds: float = 8.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.timeout_seconds = timeout_seconds
        key = (api_key or "").strip()
        if client is not None:
            self._client: Optional[AsyncOpenAI] = client
        elif key and not key.startswith("sk-your-"):
            # The SDK retries internally; the outer wait_for is the real bound
            self._client = AsyncOpenAI(api_key=key, max_retries=0, timeout=timeout_seconds)
        else:
            self._client = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ReasoningService":
        settings = settings or get_settings()
        return cls(
            api_key=settings.openai_api_key,
            model=settings.reasoning_model,
            timeout_seconds=settings.reasoning_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def _complete_json(
        self,
        prompt: str,
        max_tokens: int = 400,
        error: Type[ReasoningUnavailable] = ReasoningUnavailable,
    ) -> Dict[str, Any]:
        """Send one prompt and return the decoded JSON object answer."""
        if self._client is None:
            raise error("Reasoning service is not configured")

        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    response_format={"type": "json_object"},
                    temperature=0,
                    max_tokens=max_tokens,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise error(
                f"Reasoning service timed out after {self.timeout_seconds:g}s"
            ) from exc
        except (OpenAIError, httpx.HTTPError) as exc:
            raise error(f"Reasoning service error: {exc}") from exc

        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise error("Reasoning service returned non-JSON output") from exc
        if not isinstance(data, dict):
            raise error("Reasoning service returned a non-object answer")
        return data

    @staticmethod
    def _parse(
        model: type,
        data: Dict[str, Any],
        error: Type[ReasoningUnavailable] = ReasoningUnavailable,
    ) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise error(
                f"Reasoning service answer did not match {model.__name__}"
            ) from exc

    async def check_duplicate(
        self,
        title: str,
        description: Optional[str],
        existing: Sequence[ConceptRef],
    ) -> DuplicateVerdict:
        prompt = DUPLICATE_PROMPT.format(
            title=title,
            description=(description or "").strip() or "-",
            existing=_format_concepts(existing),
        )
        verdict = self._parse(DuplicateVerdict, await self._complete_json(prompt))
        logger.debug(
            "Duplicate check answered",
            extra={"candidate": title, "is_duplicate": verdict.is_duplicate},
        )
        return verdict

    async def validate_prerequisite(self, from_title: str, to_title: str) -> PathVerdict:
        prompt = PREREQUISITE_PROMPT.format(from_title=from_title, to_title=to_title)
        data = await self._complete_json(prompt, error=ValidationUnavailable)
        return self._parse(PathVerdict, data, error=ValidationUnavailable)

    async def estimate_effort(self, nodes: Sequence[ConceptRef]) -> EffortVerdict:
        prompt = ESTIMATE_PROMPT.format(concepts=_format_concepts(nodes))
        # Roughly 40 tokens per node in the answer
        max_tokens = min(4000, 200 + 40 * len(nodes))
        data = await self._complete_json(prompt, max_tokens=max_tokens, error=EstimationUnavailable)
        return self._parse(EffortVerdict, data, error=EstimationUnavailable)
