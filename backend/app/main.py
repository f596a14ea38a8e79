"""
Campaign Engine - FastAPI Application

Main entry point for the Campaign Engine backend.

Architecture:
- IdentityContext is built per request from the bearer token
- Every service operation asks the access policy before touching data
- Lifecycle changes go through table-driven state machines
- Committed mutations are recorded on the audit trail
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .database import init_db
from .errors import CampaignEngineError, Conflict, Forbidden, NotFound, ValidationError
from .routers import auth_router, campaigns_router, images_router, audit_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# 403 reveals that an out-of-scope resource exists; 404 hides it
SCOPE_DENIAL_STATUS = int(os.getenv("SCOPE_DENIAL_STATUS", "403"))
if SCOPE_DENIAL_STATUS not in (403, 404):
    raise ValueError("SCOPE_DENIAL_STATUS must be 403 or 404")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Campaign Engine",
    description="""
    Campaign Engine - Multi-tenant Campaign Workflow API

    Staff run advertising campaigns for client companies and assign field
    contractors, who upload proof-of-work images for staff review.

    ## Roles
    - **staff**: full control over campaigns, assignments and reviews
    - **client**: read-only view of their own company's campaigns
    - **contractor**: sees assigned campaigns, uploads images while in progress

    ## Lifecycles
    - Campaign: new → in_progress → completed, with cancellation from new or in_progress
    - Image: pending → approved | rejected (terminal; resubmit by uploading anew)
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DOMAIN ERROR HANDLING
# =============================================================================

def _status_for(exc: CampaignEngineError) -> int:
    if isinstance(exc, Forbidden):
        return SCOPE_DENIAL_STATUS if exc.out_of_scope else 403
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, Conflict):
        return 409
    if isinstance(exc, ValidationError):
        return 422
    return 400


@app.exception_handler(CampaignEngineError)
async def campaign_engine_error_handler(request: Request, exc: CampaignEngineError):
    status_code = _status_for(exc)
    logger.warning(f"{request.method} {request.url.path} -> {status_code} {exc.kind}: {exc.message}")

    detail, kind = exc.message, exc.kind
    if isinstance(exc, Forbidden) and status_code == 404:
        detail, kind = "Not found", NotFound.kind
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "error": kind},
    )


# Include routers
app.include_router(auth_router)
app.include_router(campaigns_router)
app.include_router(images_router)
app.include_router(audit_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Campaign Engine",
        "version": "1.0.0",
        "description": "Multi-tenant Campaign Workflow API",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
