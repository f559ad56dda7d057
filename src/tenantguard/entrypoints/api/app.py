"""FastAPI application definition."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from .deps import lifespan
from .errors import register_exception_handlers


def create_app(**kwargs: Any) -> FastAPI:
    """Create an application with tenantguard error handling installed.

    Routes belong to the embedding service; this only provides the
    lifespan wiring, exception mapping and health check.
    """
    kwargs.setdefault("lifespan", lifespan)
    app = FastAPI(title="tenantguard", version="0.1.0", **kwargs)
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app
