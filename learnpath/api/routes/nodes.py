"""
Concept (learning node) endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse

from learnpath.api.deps import Catalog, OptionalUserId
from learnpath.errors import DuplicateConcept
from learnpath.schemas.common import SuccessResponse
from learnpath.schemas.concept import (
    ConceptCreate,
    ConceptResponse,
    ConceptSummary,
    DuplicateConceptResponse,
)

router = APIRouter()


@router.post(
    "/nodes",
    response_model=SuccessResponse[ConceptResponse],
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": DuplicateConceptResponse}},
)
async def create_node(
    data: ConceptCreate,
    catalog: Catalog,
    user_id: OptionalUserId,
):
    """Create a concept unless it duplicates one already in the topic."""
    try:
        concept = await catalog.create_concept(
            topic_id=data.topic_id,
            title=data.title,
            description=data.description,
            icon=data.icon,
            color=data.color,
            created_by=user_id or data.user_id,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except DuplicateConcept as exc:
        # Returned, not raised, so the rejection event is committed
        body = DuplicateConceptResponse(
            reason=exc.reason,
            similar_node=(
                ConceptSummary.model_validate(exc.suggested_existing)
                if exc.suggested_existing is not None else None
            ),
        )
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=body.model_dump(mode="json", by_alias=True),
        )

    return SuccessResponse(data=ConceptResponse.model_validate(concept))


@router.get("/nodes/{topic_id}", response_model=SuccessResponse[List[ConceptResponse]])
async def list_nodes(
    topic_id: int,
    catalog: Catalog,
    q: Optional[str] = Query(None, max_length=255, description="Case-insensitive title filter"),
):
    """Concepts of a topic, most used first."""
    concepts = await catalog.list_concepts(topic_id, search=q)
    return SuccessResponse(data=[ConceptResponse.model_validate(c) for c in concepts])
