"""
NeuroShop - FastAPI Application

Main entry point for the NeuroShop backend.

Architecture:
- MemoryStore → Core / Recall / Archival memory per user
- MaturityTracker → tool / copilot / partner from interaction volume
- ConsolidationEngine → recall approvals → archival notes, relationship stage
- PriceAlertEngine → watch list observations → explainable alerts
- BudgetTracker → monthly spending and threshold breaches
"""
import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .database import init_db
from .exceptions import AlreadyResolved, InvalidItem, NotFound, StoreUnavailable
from .routers import assistant_router, memory_router, price_tracking_router, scheduler_router


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    logger.info(f"NeuroShop {__version__} started")
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="NeuroShop",
    description="""
    NeuroShop - Memory-aware Shopping Assistant Backend

    ## Memory
    - **Core**: durable profile (goals, preferences, trust, relationship stage)
    - **Recall**: append-only log of recent actions
    - **Archival**: long-term notes ranked by importance

    ## Price Tracking
    - Watch list with price history
    - Explainable alerts; target hits require the user's approval
    - Monthly budget with threshold breach signal

    ## Identity
    Requests carry the authenticated user in the `X-User-Id` header,
    set by the upstream gateway.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ERROR MAPPING
# =============================================================================

ERROR_STATUS = {
    StoreUnavailable: 503,
    InvalidItem: 422,
    NotFound: 404,
    AlreadyResolved: 409,
}


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception):
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


for error_cls, status_code in ERROR_STATUS.items():
    app.add_exception_handler(error_cls, _error_handler(status_code))


# Include routers
app.include_router(memory_router)
app.include_router(price_tracking_router)
app.include_router(assistant_router)
app.include_router(scheduler_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "NeuroShop",
        "version": __version__,
        "description": "Memory-aware Shopping Assistant Backend",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# For running with: python -m neuroshop.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
