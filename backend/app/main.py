"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import extraction, tables, uploads, variables
from app.callid.client import CallIDAssignmentClient
from app.core.config import settings
from app.core.logging import get_logger, setup_logging
from app.core.progress import ProgressNotifier
from app.extraction import ExtractionEngine, ExtractionWorkspace


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging("DEBUG" if settings.APP_ENV == "development" else settings.LOG_LEVEL)
    logger = get_logger("startup")

    app.state.progress = ProgressNotifier(heartbeat_seconds=settings.PROGRESS_HEARTBEAT_SECONDS)
    app.state.workspace = ExtractionWorkspace(settings.EXTRACT_DIR)
    app.state.extraction = ExtractionEngine(app.state.workspace, batch_count=settings.STRATIFY_BATCH_COUNT)
    app.state.callid = CallIDAssignmentClient(settings.CALLID_SERVICE_URL, timeout=settings.CALLID_TIMEOUT_SECONDS)

    logger.info("Application starting", env=settings.APP_ENV)
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title="Sample Automation API",
    description="Sample file ingestion, post-processing and extraction service",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

API_PREFIX = "/api/v1"
app.include_router(uploads.router, prefix=API_PREFIX)
app.include_router(variables.router, prefix=API_PREFIX)
app.include_router(tables.router, prefix=API_PREFIX)
app.include_router(extraction.router, prefix=API_PREFIX)


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Public health-check endpoint."""
    return {"status": "ok", "env": settings.APP_ENV}
