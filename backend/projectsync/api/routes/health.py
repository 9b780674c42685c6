"""
Health check endpoint.
"""
from fastapi import APIRouter

from projectsync.core.config import settings

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    """
    Basic health check endpoint.

    Returns:
        Simple status message indicating the API is running
    """
    return {
        "status": "ok",
        "service": settings.PROJECT_NAME,
    }
