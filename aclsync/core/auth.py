"""
API key authentication for write endpoints.
"""
import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from aclsync.core.config import settings

logger = logging.getLogger(__name__)

# Define the API key header
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> Optional[str]:
    """
    Dependency to verify the static API key.

    If API_KEY is not configured, authentication is disabled (for testing/dev).

    Raises:
        HTTPException: If the API key is missing or invalid
    """
    if not settings.is_auth_enabled():
        logger.debug("API_KEY not configured - authentication is disabled")
        return None

    if not api_key:
        logger.warning("API key missing from request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not hmac.compare_digest(api_key, settings.API_KEY):
        logger.warning(f"Invalid API key attempted: {api_key[:4]}...")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return api_key
