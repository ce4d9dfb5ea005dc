"""
API key authentication for the job API.

Keys are configured with API_KEYS (comma-separated). When no keys are
configured the check is disabled, which is intended for local use only.
"""

import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request

logger = logging.getLogger(__name__)


def _key_matches(candidate: str, keys) -> bool:
    # Compare against every key to keep timing independent of position
    matched = False
    for key in keys:
        if secrets.compare_digest(candidate.encode("utf-8"), key.encode("utf-8")):
            matched = True
    return matched


async def require_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(default=None),
) -> Optional[str]:
    """
    FastAPI dependency enforcing the X-API-Key header.

    Returns:
        The accepted key, or None when authentication is disabled.

    Raises:
        HTTPException: 401 if the header is missing or not a configured key.
    """
    keys = request.app.state.config.API_KEYS
    if not keys:
        return None

    if not x_api_key:
        raise HTTPException(status_code=401, detail="Missing API key")

    if not _key_matches(x_api_key, keys):
        logger.warning(f"Rejected API key from {request.client.host if request.client else 'unknown'}")
        raise HTTPException(status_code=401, detail="Invalid API key")

    return x_api_key
