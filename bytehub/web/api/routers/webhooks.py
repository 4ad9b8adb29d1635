"""GitHub webhook receiver.

Verifies the ``X-Hub-Signature-256`` HMAC, parses the event named by
``X-GitHub-Event`` and hands it to the dispatcher. Unsupported event types
and non-actionable events are acknowledged with 200.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from bytehub.shared.config import Settings, get_settings
from bytehub.shared.database import get_db_session
from bytehub.web.api.dependencies import get_notifier
from bytehub.web.api.schemas import WebhookResponse
from bytehub.web.dispatch import EventDispatcher, NotificationSink
from bytehub.web.github_events import parse_event
from bytehub.web.security import verify_github_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks")


@router.post("/github")
async def handle_github_webhook(
    request: Request,
    x_github_event: Optional[str] = Header(default=None),
    x_hub_signature_256: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
    notifier: Optional[NotificationSink] = Depends(get_notifier),
) -> WebhookResponse:
    """Receive a GitHub webhook delivery."""
    body = await request.body()

    if not verify_github_signature(settings.github_webhook_secret, body, x_hub_signature_256):
        logger.warning("Invalid GitHub signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    if not x_github_event:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-GitHub-Event header",
        )

    try:
        event = parse_event(x_github_event, json.loads(body))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Invalid {x_github_event} payload: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    if event is None:
        logger.info(f"Ignoring unknown event type {x_github_event}")
        return WebhookResponse(status="ignored", event=x_github_event)

    outcome = await EventDispatcher(session, notifier).dispatch(event)

    return WebhookResponse(
        status="skipped" if outcome.skipped else "processed",
        event=event.event_key,
        skipped_reason=outcome.skipped_reason,
        posted_forum=outcome.posted_forum,
        posted_announce=outcome.posted_announce,
    )
