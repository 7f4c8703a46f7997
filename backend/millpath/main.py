"""
Main application module for the millpath backend.

This file sets up the FastAPI application, configures CORS so a browser
front end can submit tasks, and exposes a simple health check endpoint.
The task and job routes are included under the ``/api`` namespace.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes_jobs import router as jobs_router
from .services.jobs_store import init_db


def create_app() -> FastAPI:
    """Factory to create and configure the FastAPI application.

    Returns:
        FastAPI: The configured FastAPI application instance.
    """
    app = FastAPI(title="millpath")

    # Create the job table before any request is processed.  init_db is
    # idempotent.
    @app.on_event("startup")  # type: ignore[misc]
    async def startup_event() -> None:
        init_db()

    # Allow all origins by default.  Restrict this in production.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(jobs_router, prefix="/api", tags=["jobs"])

    return app


# Uvicorn imports this instance when running ``uvicorn millpath.main:app``.
app = create_app()
