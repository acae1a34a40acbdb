"""
Prerequisite validation endpoint.
"""

from fastapi import APIRouter

from learnpath.api.deps import ValidationEngine
from learnpath.schemas.validation import ValidatePathRequest, ValidatePathResponse

router = APIRouter()


@router.post("/validate-path", response_model=ValidatePathResponse)
async def validate_path(data: ValidatePathRequest, engine: ValidationEngine):
    """
    Is `from_node` a sensible prerequisite of `to_node`?

    Cached verdicts come back with fromDatabase=true and no model call.
    """
    outcome = await engine.validate_pair(data.from_node, data.to_node)
    return ValidatePathResponse(
        is_valid=outcome.is_valid,
        reason=outcome.reason,
        recommendation=outcome.recommendation,
        from_database=outcome.from_database,
    )
