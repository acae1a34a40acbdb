"""
Effort estimation endpoint for unsaved node sets.
"""

from fastapi import APIRouter

from learnpath.ai.reasoning import ConceptRef
from learnpath.api.deps import Estimator
from learnpath.schemas.common import SuccessResponse
from learnpath.schemas.planning import EstimateNodesRequest, EstimateResponse

router = APIRouter()


@router.post("/estimate-nodes", response_model=SuccessResponse[EstimateResponse])
async def estimate_nodes(data: EstimateNodesRequest, estimator: Estimator):
    """Per-node hours plus total and suggested daily hours."""
    refs = [ConceptRef(id=n.id, title=n.title, description=n.description) for n in data.nodes]
    estimate = await estimator.estimate(refs)
    return SuccessResponse(data=EstimateResponse.model_validate(estimate))
