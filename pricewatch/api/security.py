"""
Admin API authentication.
"""
import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from pricewatch.core.config import settings


def _token_matches(candidate: Optional[str]) -> bool:
    if not candidate:
        return False
    return secrets.compare_digest(candidate.encode(), settings.API_AUTH_TOKEN.encode())


async def require_api_key(x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")):
    """Reject admin calls without the configured X-API-Key, unless auth is switched off."""
    if not settings.API_AUTH_ENABLED:
        return

    if not settings.API_AUTH_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API auth is enabled but no API_AUTH_TOKEN is set"
        )

    if not _token_matches(x_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key"
        )
