"""
Custom exceptions and global exception handlers.

The server half raises ``AppException`` subclasses which are rendered as
``{"error": message}`` bodies. The client core raises ``ProjectSyncError``
subclasses; background paths catch and log them instead of propagating.
"""
from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import logging

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = None,
    ):
        self.message = message
        self.status_code = status_code
        self.detail = detail or message
        super().__init__(self.message)


class UnauthorizedError(AppException):
    """No resolvable caller identity."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class NotFoundError(AppException):
    """Resource missing or not owned by the caller."""

    def __init__(self, message: str = "Project not found"):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ValidationError(AppException):
    """Missing or invalid field on a mutating call."""

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class StorageError(AppException):
    """Underlying database call failed."""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


# =============================================================================
# Client core errors
# =============================================================================

class ProjectSyncError(Exception):
    """Base class for client-side failures."""


class RemoteStoreError(ProjectSyncError):
    """A call to the remote project store failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class LocalStoreError(ProjectSyncError):
    """The local history store rejected an operation."""


class SandboxError(ProjectSyncError):
    """A sandbox filesystem or process call failed."""


class SyncError(ProjectSyncError):
    """Background push to the remote store failed."""


class RestoreError(ProjectSyncError):
    """Local or remote restore failed."""


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request body validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        msg = error["msg"]
        errors.append(f"{field}: {msg}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Invalid request body",
            "errors": errors,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )
