"""Middleware: optional Bearer API key guarding every /api/v1 route."""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from photoclassify.config import Settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def _key_matches(presented: str, expected: str) -> bool:
    return secrets.compare_digest(presented.encode(), expected.encode())


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Reject requests without the configured PHOTOCLASSIFY_API_KEY.

    Photo listings, selections and classifications are all behind this check
    once a key is set; with no key the service is open.
    """
    settings: Settings = request.app.state.settings
    if settings.api_key is None:
        return

    if credentials is not None and _key_matches(credentials.credentials, settings.api_key):
        return

    logger.warning(
        "Rejected %s %s: %s API key",
        request.method,
        request.url.path,
        "missing" if credentials is None else "invalid",
    )
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
        headers={"WWW-Authenticate": "Bearer"},
    )
