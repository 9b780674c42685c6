"""
Common dependencies for FastAPI endpoints.
"""
from typing import Generator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from projectsync.core.config import settings
from projectsync.core.exceptions import UnauthorizedError
from projectsync.db.session import SessionLocal
from projectsync.services.auth import decode_identity

# Bearer header is optional: browsers send the session cookie instead
security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    Resolve the caller's user id from the bearer token or session cookie.

    Returns None when no valid token is present.
    """
    token = None
    if credentials is not None:
        token = credentials.credentials
    else:
        token = request.cookies.get(settings.AUTH_SESSION_COOKIE)

    if not token:
        return None
    return decode_identity(token)


def get_current_user_id(
    user_id: Optional[str] = Depends(get_current_user_optional),
) -> str:
    """
    Require an authenticated caller.

    Raises:
        UnauthorizedError: If no identity can be resolved
    """
    if user_id is None:
        raise UnauthorizedError()
    return user_id
