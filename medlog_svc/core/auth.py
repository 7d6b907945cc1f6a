"""
API key authentication for the MedLog API.

The service holds private medical data, so every /api/v1 route requires the
key configured in MEDLOG_API_KEY.
"""
import logging
import secrets
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from core.config import API_KEY

logger = logging.getLogger(__name__)

API_KEY_HEADER_NAME = "X-API-Key"

api_key_header = APIKeyHeader(
    name=API_KEY_HEADER_NAME,
    auto_error=False,
    description="API key for authenticating requests. Include in the X-API-Key header.",
)


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> str:
    """
    Verify the API key from the request header using a constant-time comparison.

    Raises:
        HTTPException: 401 Unauthorized if key is missing.
        HTTPException: 403 Forbidden if key is invalid.
    """
    if api_key is None:
        logger.warning("API request without authentication header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Include it in the X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not secrets.compare_digest(api_key, API_KEY):
        logger.warning("API request with invalid API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key
