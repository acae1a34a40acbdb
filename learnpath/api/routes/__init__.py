"""
API routes, mounted under the configured API prefix.
"""

from fastapi import APIRouter

from learnpath.api.routes import estimates, nodes, validation, workflows

router = APIRouter()

router.include_router(nodes.router, tags=["Concepts"])
router.include_router(validation.router, tags=["Validation"])
router.include_router(estimates.router, tags=["Estimation"])
router.include_router(workflows.router, prefix="/workflows", tags=["Workflows"])
