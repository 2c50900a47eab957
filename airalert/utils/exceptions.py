"""Custom exception classes and error handling utilities."""
from typing import Any, Dict, Optional
from fastapi import HTTPException, status
from loguru import logger


class AirAlertException(Exception):
    """Base exception for the application."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DatabaseError(AirAlertException):
    """Database operation errors."""
    pass


class PersistenceError(DatabaseError):
    """A notification could not be written to the log and inbox."""
    pass


class NotFoundError(AirAlertException):
    """A requested user, subscription or notification does not exist."""
    pass


class PushGatewayError(AirAlertException):
    """The push transport could not accept a batch."""
    pass


class FeedDisconnectedError(AirAlertException):
    """The live reading feed could not be re-established."""
    pass


def handle_database_error(error: Exception) -> HTTPException:
    """Handle database errors and return appropriate HTTP response."""
    logger.error(f"Database error: {error}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Database operation failed. Please try again later."
    )


def handle_not_found_error(error: NotFoundError) -> HTTPException:
    """Handle lookups of missing resources."""
    logger.warning(f"Not found: {error.message}")
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=error.message
    )

