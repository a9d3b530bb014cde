"""API key dependency shared by every sync route."""
import os
import secrets
from typing import Annotated

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader


API_KEY_HEADER_NAME = "X-AGENCY-API-KEY"

api_key_header = APIKeyHeader(name=API_KEY_HEADER_NAME, auto_error=False)


async def require_api_key(
    api_key: Annotated[str | None, Security(api_key_header)] = None
) -> str:
    """Check the request's API key against AGENCY_API_KEY.

    Missing and wrong keys both answer 401.

    Raises:
        HTTPException: 401 if the key is missing or does not match
        RuntimeError: If AGENCY_API_KEY is not configured
    """
    expected_key = os.getenv("AGENCY_API_KEY")
    if not expected_key:
        raise RuntimeError("AGENCY_API_KEY environment variable not configured")

    if not api_key or not secrets.compare_digest(api_key.encode(), expected_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "API-Key"},
        )

    return api_key
