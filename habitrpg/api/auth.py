"""API authentication using bearer JWTs"""
import logging
from typing import Optional
from fastapi import HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from habitrpg.exceptions import AuthenticationError
from habitrpg.services.auth_service import decode_user_id

logger = logging.getLogger(__name__)

# auto_error=False so a missing header is a 401 like any other bad token
security = HTTPBearer(auto_error=False)

UNAUTHORIZED_MESSAGE = "Invalid or missing user authentication"


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> int:
    """
    Resolve the authenticated user id from the Authorization header

    Args:
        credentials: HTTP authorization credentials

    Returns:
        Positive integer user id from the token's userId claim

    Raises:
        HTTPException: 401 if the header is missing or the token is invalid
    """
    if credentials is None or not credentials.credentials:
        logger.debug("Request without bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=UNAUTHORIZED_MESSAGE,
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return decode_user_id(credentials.credentials)
    except AuthenticationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=UNAUTHORIZED_MESSAGE,
            headers={"WWW-Authenticate": "Bearer"},
        )
