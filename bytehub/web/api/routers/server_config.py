"""Server configuration API router."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bytehub.shared.database import get_db_session
from bytehub.web.api.dependencies import verify_api_key
from bytehub.web.api.schemas import ServerConfigRequest, ServerConfigResponse
from bytehub.web.crud import NotFoundError, ServerConfigOperations

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guilds/{guild_id}/config", dependencies=[Depends(verify_api_key)])


@router.get("")
async def get_server_config(
    guild_id: str,
    session: AsyncSession = Depends(get_db_session),
) -> ServerConfigResponse:
    """Get a guild's channel configuration."""
    config = await ServerConfigOperations(session).get_config(guild_id)
    if config is None:
        raise NotFoundError(f"Server config not found for guild {guild_id}")
    return ServerConfigResponse.model_validate(config)


@router.put("")
async def save_server_config(
    guild_id: str,
    request: ServerConfigRequest,
    session: AsyncSession = Depends(get_db_session),
) -> ServerConfigResponse:
    """Create or replace a guild's channel configuration.

    Saving identical values is a no-op and leaves ``version`` unchanged.
    """
    config = await ServerConfigOperations(session).save_config(
        guild_id,
        request.announcements_id,
        request.github_forum_id,
        mod_category_id=request.mod_category_id,
        project_review_id=request.project_review_id,
        approvals_id=request.approvals_id,
    )
    return ServerConfigResponse.model_validate(config)
