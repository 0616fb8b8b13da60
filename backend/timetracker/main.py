"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timetracker import __version__
from timetracker.api.v1.api import api_router
from timetracker.api.v1.endpoints.jira import callback_router
from timetracker.config import settings
from timetracker.connectors.errors import JiraApiError, JiraApiUnauthorizedError
from timetracker.scheduler import shutdown_scheduler, start_scheduler
from timetracker.utils.log_setup import configure_logging

# Configure root logger early
configure_logging(settings.log_level)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.jira_sync_interval_minutes > 0 or settings.subticket_sync_interval_hours > 0:
        start_scheduler()
    yield
    shutdown_scheduler()


app = FastAPI(
    title="Timetracker Jira Integration",
    description="Syncs time tracking entries to Jira work logs via OAuth",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__
    }


@app.get("/")
async def root():
    """Root endpoint - points to the docs."""
    return {
        "message": "Timetracker Jira Integration API",
        "version": __version__,
        "docs": "/docs"
    }


app.include_router(callback_router)
app.include_router(api_router, prefix=settings.api_v1_str)


@app.exception_handler(JiraApiUnauthorizedError)
async def jira_unauthorized_handler(request: Request, exc: JiraApiUnauthorizedError):
    log.info(f"Jira authorization required for {request.url.path}")
    return JSONResponse(
        status_code=401,
        content={
            "error": "Jira authentication required",
            "message": exc.message,
            "redirect_url": exc.redirect_url,
        }
    )


@app.exception_handler(JiraApiError)
async def jira_api_error_handler(request: Request, exc: JiraApiError):
    log.warning(f"Jira API error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=502,
        content={
            "error": "Jira API error",
            "message": exc.message,
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn_level = "debug" if settings.log_level.upper() == "VERBOSE" else settings.log_level.lower()
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=uvicorn_level)
