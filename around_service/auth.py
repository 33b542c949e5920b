"""
Authentication dependencies for Around Service
"""
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from typing import Optional
import logging

from .config import Settings
from .errors import ErrorKind
from .schemas import Principal

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=ErrorKind.AUTHENTICATION_REQUIRED.status_code,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_token(token: str, settings: Settings) -> Optional[Principal]:
    """
    Decode a bearer token

    Args:
        token: JWT access token
        settings: Settings holding the signing key and algorithm

    Returns:
        The principal named by the token, or None if the token is invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as e:
        logger.warning(f"Token verification failed: {e}")
        return None

    username = payload.get(settings.JWT_USERNAME_CLAIM)
    if not isinstance(username, str) or not username:
        logger.warning("Token has no username claim")
        return None
    return Principal(username=username)


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Principal:
    """
    Dependency to get the authenticated principal

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if not credentials:
        raise _unauthorized()

    principal = verify_token(credentials.credentials, request.app.state.settings)
    if principal is None:
        raise _unauthorized()

    return principal
