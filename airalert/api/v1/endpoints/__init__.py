"""API endpoint modules for v1."""

from airalert.api.v1.endpoints import diagnostics, notifications

__all__ = [
    "diagnostics",
    "notifications",
]
