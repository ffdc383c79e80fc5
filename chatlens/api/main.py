"""
FastAPI application for chatlens.

Endpoints:
- POST /api/analyze              run the pipeline on pasted text
- POST /api/corrections          store a role correction
- POST /api/weights/recompute    fold corrections into weight deltas
- GET  /api/weights              current weight deltas
- GET  /api/store/stats          correction store counts
- GET/POST/DELETE /api/topics    user-defined topic keywords
- GET  /health                   liveness

Run with ``uvicorn chatlens.api.main:app``.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatlens import __version__
from chatlens.api.routes import analysis, learning
from chatlens.config import get_settings
from chatlens.log_config import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup."""
    configure_logging(level=get_settings().log_level)
    yield


def create_app() -> FastAPI:
    """Build the application with its routers."""
    app = FastAPI(
        title="chatlens API",
        description="Reconstruct roles, intents, topics and sections from pasted AI-chat text",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # API routes - mounted under /api
    # =========================================================================

    app.include_router(analysis.router, prefix="/api", tags=["Analysis"])
    app.include_router(learning.router, prefix="/api", tags=["Learning"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    return app


app = create_app()
