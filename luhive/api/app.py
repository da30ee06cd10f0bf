"""FastAPI application for the Luhive events backend.

Provides REST endpoints for:
- Event detail, registration countdown and calendar export
- Registration, verification and attender management
- The Google Forms integration
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from luhive.adapters.supabase_client import get_service_client
from luhive.api.dependencies import reset_dependencies
from luhive.api.exceptions import register_exception_handlers
from luhive.api.routes.events import router as events_router
from luhive.api.routes.google_forms import router as google_forms_router
from luhive.config import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Luhive events API starting")
    yield
    if get_service_client.cache_info().currsize:
        await get_service_client().aclose()
    reset_dependencies()
    logger.info("Luhive events API stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Luhive Events API",
        description="Event registration and integrations backend",
        version="0.1.0",
        lifespan=lifespan,
    )

    if settings.CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)

    app.include_router(events_router, prefix="/api")
    app.include_router(google_forms_router, prefix="/api")

    @app.get("/api/ping")
    async def ping() -> dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "luhive-events",
        }

    return app


app = create_app()
