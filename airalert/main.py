"""FastAPI application factory."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from airalert.api.v1 import api_router
from airalert.config import settings


tags_metadata: List[dict[str, str]] = [
    {"name": "notifications", "description": "Device subscriptions, push registration and the notification inbox."},
    {"name": "diagnostics", "description": "Send test pushes and reset alert cooldowns."},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "API starting",
        project=settings.PROJECT_NAME,
        cooldown_minutes=settings.ALERT_COOLDOWN_MINUTES,
    )
    yield
    logger.info("API stopped")


def create_app() -> FastAPI:
    """Create the API serving subscriptions, the notification inbox and diagnostics.

    Alert evaluation itself never runs in request handlers: it is driven by
    the Celery poller and the live reading feed.
    """

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Real-time air quality threshold alerts.",
        version="0.1.0",
        openapi_tags=tags_metadata,
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("Rejected invalid request", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"success": False, "detail": jsonable_encoder(exc.errors()), "message": "Validation failed"},
        )

    @app.get("/health", include_in_schema=False)
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
