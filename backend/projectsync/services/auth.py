"""
Identity service - verification of tokens issued by the identity provider.

The provider owns sign-in; this service only resolves a caller identity
(the token's ``sub`` claim) from a bearer header or session cookie.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from projectsync.core.config import settings


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed session token.

    Only usable with a shared-secret algorithm; used by tests and local
    development in place of the identity provider.

    Args:
        data: Claims to encode, must include ``sub``
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.AUTH_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire})
    if settings.AUTH_JWT_ISSUER:
        to_encode.setdefault("iss", settings.AUTH_JWT_ISSUER)
    return jwt.encode(
        to_encode,
        settings.AUTH_JWT_KEY,
        algorithm=settings.AUTH_JWT_ALGORITHM,
    )


def decode_identity(token: str) -> Optional[str]:
    """
    Decode a session token and return the caller's user id.

    Returns:
        The ``sub`` claim if the token is valid, None otherwise
    """
    options = {"verify_aud": False}
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_KEY,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            issuer=settings.AUTH_JWT_ISSUER,
            options=options,
        )
    except JWTError:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    return str(user_id)
