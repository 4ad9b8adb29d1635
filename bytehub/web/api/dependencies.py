"""FastAPI dependencies for authentication and shared services."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bytehub.shared.config import Settings, get_settings
from bytehub.web.dispatch import NotificationSink
from bytehub.web.security import verify_api_key_value

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def verify_api_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """Require ``Authorization: Bearer <bot_api_key>``.

    Returns:
        str: The accepted API key

    Raises:
        HTTPException: 401 if the key is missing or wrong
    """
    provided = credentials.credentials if credentials else None
    if not verify_api_key_value(settings.bot_api_key, provided):
        logger.warning("Rejected request with missing or invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return provided


def get_notifier(request: Request) -> Optional[NotificationSink]:
    """Notification sink registered on the application, if any."""
    return getattr(request.app.state, "notifier", None)
