"""Project governance service for the Discord bot.

This module implements the moderation flows behind the slash commands:
project submission, approval with forum creation, denial, listing, and
server setup. Every function returns the message shown to the user and is
Discord-agnostic; channel management goes through ``ChannelManager``.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from bytehub.web.crud import (
    MutationError,
    MutationResult,
    ProjectOperations,
    ServerConfigOperations,
)
from bytehub.web.models import Project, repo_name

logger = logging.getLogger(__name__)

ANNOUNCEMENTS_CHANNEL = "announcements"
GITHUB_CATEGORY = "GitHub"
MOD_CATEGORY = "Mod"
PROJECT_REVIEW_CHANNEL = "project-review"
APPROVALS_CHANNEL = "approvals"


class ChannelManager(Protocol):
    """Guild channel lookup and creation."""

    async def find_channel_by_name(self, guild_id: str, name: str) -> Optional[str]: ...

    async def create_forum_channel(self, guild_id: str, name: str, category_id: str) -> str: ...

    async def find_or_create_category(self, guild_id: str, name: str) -> str: ...

    async def find_or_create_text_channel(
        self, guild_id: str, name: str, category_id: Optional[str] = None
    ) -> str: ...


def error_message(result: MutationResult) -> str:
    return f"❌ Error: {result.error.value}"


def format_project_list(projects: Iterable[Project]) -> str:
    """Group projects into approved and pending sections."""
    approved = []
    pending = []
    for project in projects:
        line = f"• `{project.github_repo}`"
        (approved if project.is_approved else pending).append(line)

    if not approved and not pending:
        return "No projects registered."

    sections = []
    if approved:
        sections.append("**✅ Approved:**\n" + "\n".join(approved))
    if pending:
        sections.append("**⏳ Pending:**\n" + "\n".join(pending))
    return "\n\n".join(sections)


async def submit_project(session: AsyncSession, github_repo: str) -> str:
    result = await ProjectOperations(session).submit_project(github_repo)
    if not result.success:
        return error_message(result)
    return f"Project `{github_repo}` submitted for approval."


async def deny_project(session: AsyncSession, github_repo: str) -> str:
    result = await ProjectOperations(session).deny_project(github_repo)
    if not result.success:
        return error_message(result)
    return f"Project `{github_repo}` denied and removed."


async def list_projects(session: AsyncSession, guild_id: str) -> str:
    """List a guild's projects and submissions awaiting a guild."""
    ops = ProjectOperations(session)
    projects = await ops.list_projects_by_guild(guild_id)
    projects += await ops.list_projects_by_guild("")
    return format_project_list(projects)


async def approve_project(
    session: AsyncSession,
    channels: ChannelManager,
    guild_id: str,
    github_repo: str
) -> str:
    """Approve a project, creating its forum channel when it has none.

    Requires the guild to have been set up so the GitHub category is known.
    An existing numeric forum channel ID on the project is reused.
    """
    config = await ServerConfigOperations(session).get_config(guild_id)
    if config is None:
        return "❌ Error: Server not set up. Run /setup-server first."

    ops = ProjectOperations(session)
    project = await ops.get_project(github_repo)
    if project is None:
        return error_message(MutationResult.fail(MutationError.NOT_FOUND))

    if project.forum_channel_id.isdigit():
        forum_id = project.forum_channel_id
        is_new = False
    else:
        forum_id = await channels.create_forum_channel(
            guild_id, repo_name(project.github_repo), config.github_forum_id
        )
        is_new = True

    result = await ops.approve_project_with_forum(github_repo, forum_id, guild_id)
    if not result.success:
        return error_message(result)

    if is_new:
        action = f"Created forum: <#{forum_id}>"
    else:
        action = f"Reusing existing forum: <#{forum_id}>"
    return f"✅ Project `{github_repo}` approved!\n\n{action}"


async def setup_server(session: AsyncSession, channels: ChannelManager, guild_id: str) -> str:
    """Find or create the guild's channels and save the configuration."""
    announcements_id = await channels.find_or_create_text_channel(guild_id, ANNOUNCEMENTS_CHANNEL)
    github_category_id = await channels.find_or_create_category(guild_id, GITHUB_CATEGORY)
    mod_category_id = await channels.find_or_create_category(guild_id, MOD_CATEGORY)
    review_id = await channels.find_or_create_text_channel(
        guild_id, PROJECT_REVIEW_CHANNEL, mod_category_id
    )
    approvals_id = await channels.find_or_create_text_channel(
        guild_id, APPROVALS_CHANNEL, mod_category_id
    )

    await ServerConfigOperations(session).save_config(
        guild_id,
        announcements_id,
        github_category_id,
        mod_category_id=mod_category_id,
        project_review_id=review_id,
        approvals_id=approvals_id,
    )
    logger.info(f"Server setup complete for guild {guild_id}")

    return (
        "✅ **Server setup complete!**\n\n"
        f"• <#{announcements_id}> - Announcements\n"
        f"• <#{github_category_id}> - GitHub (Category)\n"
        f"• <#{review_id}> - Mod (project-review)\n"
        f"• <#{approvals_id}> - Mod (approvals)"
    )
