"""API router for version 1."""
from fastapi import APIRouter

from airalert.api.v1.endpoints import diagnostics, notifications


api_router = APIRouter()
api_router.include_router(notifications.router)
api_router.include_router(diagnostics.router)
