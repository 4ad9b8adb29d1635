"""Project governance slash commands."""

from __future__ import annotations

import logging
from typing import Optional

import hikari
import lightbulb

from bytehub.bot.notifier import DiscordNotifier
from bytehub.bot.services import governance_service
from bytehub.shared.database import get_db_session_context

plugin = lightbulb.Plugin("projects")

logger = logging.getLogger(__name__)

moderator_only = lightbulb.has_guild_permissions(hikari.Permissions.MANAGE_GUILD)


async def defer_ephemeral(ctx: lightbulb.Context) -> None:
    await ctx.respond(
        hikari.ResponseType.DEFERRED_MESSAGE_CREATE,
        flags=hikari.MessageFlag.EPHEMERAL,
    )


@plugin.command
@lightbulb.option("repo", "GitHub repository (owner/name)", type=str)
@lightbulb.command("submit-project", "Submit a GitHub project for approval", ephemeral=True)
@lightbulb.implements(lightbulb.SlashCommand)
async def submit_project_command(ctx: lightbulb.Context) -> None:
    async with get_db_session_context() as session:
        message = await governance_service.submit_project(session, ctx.options.repo)
    await ctx.respond(message)


@plugin.command
@lightbulb.add_checks(lightbulb.guild_only, moderator_only)
@lightbulb.option("repo", "GitHub repository (owner/name)", type=str)
@lightbulb.command("approve", "Approve a submitted project and create its forum")
@lightbulb.implements(lightbulb.SlashCommand)
async def approve_command(ctx: lightbulb.Context) -> None:
    # Channel creation can exceed the interaction response window
    await defer_ephemeral(ctx)
    try:
        async with get_db_session_context() as session:
            message = await governance_service.approve_project(
                session,
                DiscordNotifier(ctx.app.rest),
                str(ctx.guild_id),
                ctx.options.repo,
            )
    except hikari.HTTPError as e:
        logger.error(f"Discord error approving {ctx.options.repo}: {e}")
        message = f"❌ Error: {e}"
    await ctx.edit_last_response(message)


@plugin.command
@lightbulb.add_checks(lightbulb.guild_only, moderator_only)
@lightbulb.option("repo", "GitHub repository (owner/name)", type=str)
@lightbulb.command("deny", "Deny a project and remove it", ephemeral=True)
@lightbulb.implements(lightbulb.SlashCommand)
async def deny_command(ctx: lightbulb.Context) -> None:
    async with get_db_session_context() as session:
        message = await governance_service.deny_project(session, ctx.options.repo)
    await ctx.respond(message)


@plugin.command
@lightbulb.add_checks(lightbulb.guild_only, moderator_only)
@lightbulb.command("list", "List registered projects", ephemeral=True)
@lightbulb.implements(lightbulb.SlashCommand)
async def list_command(ctx: lightbulb.Context) -> None:
    async with get_db_session_context() as session:
        message = await governance_service.list_projects(session, str(ctx.guild_id))
    await ctx.respond(message)


@plugin.command
@lightbulb.add_checks(lightbulb.guild_only, moderator_only)
@lightbulb.command("setup-server", "Create the channels ByteHub posts to")
@lightbulb.implements(lightbulb.SlashCommand)
async def setup_server_command(ctx: lightbulb.Context) -> None:
    await defer_ephemeral(ctx)
    try:
        async with get_db_session_context() as session:
            message = await governance_service.setup_server(
                session, DiscordNotifier(ctx.app.rest), str(ctx.guild_id)
            )
    except hikari.HTTPError as e:
        logger.error(f"Discord error setting up guild {ctx.guild_id}: {e}")
        message = f"❌ Error: {e}"
    await ctx.edit_last_response(message)


@plugin.set_error_handler
async def on_command_error(event: lightbulb.CommandErrorEvent) -> bool:
    message = check_failure_message(event.exception)
    if message is None:
        return False
    await event.context.respond(message, flags=hikari.MessageFlag.EPHEMERAL)
    return True


def check_failure_message(exception: Exception) -> Optional[str]:
    """Reply for a failed command check, or None for other errors."""
    # Several failing checks are reported together under ``causes``
    causes = [exception, *getattr(exception, "causes", ())]
    if any(isinstance(cause, lightbulb.OnlyInGuild) for cause in causes):
        return "This command can only be used in a server."
    if isinstance(exception, lightbulb.CheckFailure):
        return "You need the Manage Server permission to use this command."
    return None


def load(bot: lightbulb.BotApp) -> None:
    """Load the projects plugin."""
    bot.add_plugin(plugin)


def unload(bot: lightbulb.BotApp) -> None:
    """Unload the projects plugin."""
    bot.remove_plugin(plugin)
