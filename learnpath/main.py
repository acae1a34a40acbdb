"""
Learning Path Engine

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Type

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from learnpath.api.middleware.rate_limit import RateLimitMiddleware
from learnpath.api.middleware.request_id import RequestIdMiddleware
from learnpath.api.routes import router as api_router
from learnpath.config import get_settings
from learnpath.database import close_db, init_db
from learnpath.errors import (
    AlreadyPublished,
    AlreadyStarred,
    AuthRequired,
    ConceptNotFound,
    DuplicateCheckUnavailable,
    DuplicateConcept,
    GraphError,
    LearningPathError,
    PartialPublish,
    ReasoningUnavailable,
    WorkflowNotFound,
    WorkflowPermissionDenied,
)
from learnpath.logging_config import configure_logging, get_logger
from learnpath.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.
    
    Runs startup and shutdown tasks.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    if not settings.ai_configured:
        logger.warning("OPENAI_API_KEY not set; validation fails %s and estimates use defaults",
                       "closed" if settings.validation_fail_closed else "open")
    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Learning Path Engine

    Build prerequisite graphs of learning concepts per topic, check them with
    an AI reasoning service, and turn them into a dated study calendar.

    ## Features

    - **Concepts**: per-topic catalog with semantic duplicate detection
    - **Validation**: cached prerequisite verdicts for ordered concept pairs
    - **Workflows**: saved, shareable and forkable learning paths
    - **Planning**: effort estimates and a day-by-day schedule
    - **Calendar**: one calendar event per scheduled concept
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# add_middleware stacks innermost-first: the last added is the outermost
_cors_origins = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _cors_headers(request: Request) -> dict:
    """CORS headers for error responses; 500s often bypass the CORS middleware."""
    origin = request.headers.get("origin") or ""
    allow_origin = origin if origin in _cors_origins else _cors_origins[0]
    headers = {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "*",
        "Access-Control-Allow-Headers": "*",
    }
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
    return headers


# Most specific class first
_ERROR_STATUS: Dict[Type[LearningPathError], int] = {
    DuplicateConcept: status.HTTP_409_CONFLICT,
    AlreadyPublished: status.HTTP_409_CONFLICT,
    AlreadyStarred: status.HTTP_409_CONFLICT,
    DuplicateCheckUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    ReasoningUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    GraphError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConceptNotFound: status.HTTP_404_NOT_FOUND,
    WorkflowNotFound: status.HTTP_404_NOT_FOUND,
    WorkflowPermissionDenied: status.HTTP_403_FORBIDDEN,
    AuthRequired: status.HTTP_401_UNAUTHORIZED,
    PartialPublish: status.HTTP_502_BAD_GATEWAY,
}


def status_for(exc: LearningPathError) -> int:
    for cls in type(exc).__mro__:
        if cls in _ERROR_STATUS:
            return _ERROR_STATUS[cls]
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(LearningPathError)
async def domain_exception_handler(request: Request, exc: LearningPathError):
    """Map domain errors onto HTTP statuses with the {success, error} envelope."""
    code = status_for(exc)
    content = {"success": False, "error": str(exc)}
    if isinstance(exc, AuthRequired):
        content["authRequired"] = True
    elif isinstance(exc, DuplicateConcept):
        content["isDuplicate"] = True
        content["reason"] = exc.reason
    elif isinstance(exc, PartialPublish):
        content["created_count"] = exc.created_count
        content["failed_at"] = exc.failed_at
    if code >= 500:
        logger.warning("Request failed: %s", exc, extra={"status_code": code})
    return JSONResponse(status_code=code, content=content, headers=_cors_headers(request))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Ensure 401/404 etc. responses carry the envelope and CORS headers."""
    content = {"success": False, "error": exc.detail}
    req_id = getattr(request.state, "request_id", None)
    if req_id and exc.status_code >= 500:
        content["request_id"] = req_id
    return JSONResponse(status_code=exc.status_code, content=content, headers=_cors_headers(request))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"success": False, "error": "Validation error", "errors": errors},
        headers=_cors_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    req_id = getattr(request.state, "request_id", None)
    if settings.debug:
        content = {
            "success": False,
            "error": str(exc),
            "type": type(exc).__name__,
            "request_id": req_id,
        }
    else:
        content = {"success": False, "error": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_cors_headers(request),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    return HealthResponse(
        status="ok",
        version=settings.version,
        database="connected",
        ai_configured=settings.ai_configured,
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "api": settings.api_prefix,
    }


app.include_router(api_router, prefix=settings.api_prefix)


# Main entry point for development
if __name__ == "__main__":
    import uvicorn
    
    uvicorn.run(
        "learnpath.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
