"""API router for version 1."""
from airalert.api.v1.api import api_router

__all__ = ["api_router"]
