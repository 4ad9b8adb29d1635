"""Discord bot client setup and configuration.

The bot process also serves the API so that GitHub webhook deliveries can be
posted through the bot's REST client.
"""

from __future__ import annotations

import asyncio
import logging

import hikari
import lightbulb
import uvicorn

from bytehub.bot.notifier import DiscordNotifier
from bytehub.shared.config import Settings
from bytehub.shared.config import get_settings
from bytehub.shared.database import close_database, init_database
from bytehub.shared.logging import configure_logging
from bytehub.web.api.app import api

logger = logging.getLogger(__name__)

PLUGINS = ("bytehub.bot.plugins.projects",)


def create_bot(settings: Settings | None = None) -> lightbulb.BotApp:
    """Create and configure the Discord bot.

    Returns:
        BotApp instance
    """
    if settings is None:
        settings = get_settings()

    bot = lightbulb.BotApp(
        token=settings.discord_bot_token,
        intents=hikari.Intents.GUILDS,
        logs={
            "version": 1,
            "incremental": True,
            "loggers": {
                "hikari": {"level": "INFO"},
                "lightbulb": {"level": "INFO"},
                "bytehub": {"level": settings.log_level.upper()},
            },
        },
        banner=None,
    )

    return bot


def load_plugins(bot: lightbulb.BotApp) -> None:
    """Load bot plugins."""
    for plugin in PLUGINS:
        bot.load_extensions(plugin)
        logger.info(f"✓ Loaded {plugin}")


async def run_bot() -> None:
    """Run the Discord bot and the webhook API in one process."""
    settings = get_settings()
    configure_logging(settings)

    if not settings.discord_bot_token:
        logger.error("Discord bot token not provided")
        return

    bot = create_bot(settings)

    @bot.listen()
    async def on_starting(event: hikari.StartingEvent) -> None:
        logger.info("Bot is starting...")
        await init_database(create_tables=True)

    @bot.listen()
    async def on_started(event: hikari.StartedEvent) -> None:
        api.state.notifier = DiscordNotifier(bot.rest)
        bot_user = event.app.get_me()
        logger.info(f"Bot started as {bot_user.username if bot_user else 'unknown'}")

    @bot.listen()
    async def on_stopping(event: hikari.StoppingEvent) -> None:
        logger.info("Bot is stopping...")
        api.state.notifier = None

    load_plugins(bot)

    server = uvicorn.Server(
        uvicorn.Config(api, host=settings.host, port=settings.port, log_config=None)
    )

    try:
        await bot.start()
        logger.info(f"Serving webhooks on {settings.host}:{settings.port}")
        await server.serve()
    except asyncio.CancelledError:
        logger.info("Bot shutdown requested")
    finally:
        logger.info("Shutting down bot...")
        await bot.close()
        await close_database()


def main() -> None:
    asyncio.run(run_bot())


if __name__ == "__main__":
    main()
