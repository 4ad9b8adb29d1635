"""Discord REST adapter used for notifications and server setup."""

from __future__ import annotations

import logging
from typing import Optional

import hikari

from bytehub.web.dispatch import NotificationEmbed

logger = logging.getLogger(__name__)


def to_hikari_embed(embed: NotificationEmbed) -> hikari.Embed:
    """Convert a notification embed into a hikari embed."""
    result = hikari.Embed(
        title=embed.title,
        description=embed.description,
        color=hikari.Color(embed.color),
    )
    if embed.footer:
        result.set_footer(embed.footer)
    return result


class DiscordNotifier:
    """Posts notifications and manages channels through the Discord REST API.

    Implements the ``NotificationSink`` protocol expected by the dispatcher.
    """

    def __init__(self, rest: hikari.api.RESTClient):
        self.rest = rest

    async def create_forum_thread(self, forum_channel_id: str, name: str, content: str) -> str:
        thread = await self.rest.create_forum_post(int(forum_channel_id), name, content)
        logger.debug(f"Created forum post {thread.id} in {forum_channel_id}")
        return str(thread.id)

    async def send_embed(self, channel_id: str, embed: NotificationEmbed) -> None:
        await self.rest.create_message(int(channel_id), embed=to_hikari_embed(embed))

    async def find_channel_by_name(self, guild_id: str, name: str) -> Optional[str]:
        """Find a guild channel or category by case-insensitive name."""
        channels = await self.rest.fetch_guild_channels(int(guild_id))
        for channel in channels:
            if channel.name and channel.name.lower() == name.lower():
                return str(channel.id)
        return None

    async def create_category(self, guild_id: str, name: str) -> str:
        category = await self.rest.create_guild_category(int(guild_id), name)
        logger.info(f"Created category {name} ({category.id}) in guild {guild_id}")
        return str(category.id)

    async def create_text_channel(
        self,
        guild_id: str,
        name: str,
        category_id: Optional[str] = None
    ) -> str:
        channel = await self.rest.create_guild_text_channel(
            int(guild_id),
            name,
            category=int(category_id) if category_id else hikari.UNDEFINED,
        )
        logger.info(f"Created text channel {name} ({channel.id}) in guild {guild_id}")
        return str(channel.id)

    async def create_forum_channel(self, guild_id: str, name: str, category_id: str) -> str:
        channel = await self.rest.create_guild_forum_channel(
            int(guild_id),
            name,
            category=int(category_id),
        )
        logger.info(f"Created forum channel {name} ({channel.id}) in guild {guild_id}")
        return str(channel.id)

    async def find_or_create_category(self, guild_id: str, name: str) -> str:
        existing = await self.find_channel_by_name(guild_id, name)
        return existing or await self.create_category(guild_id, name)

    async def find_or_create_text_channel(
        self,
        guild_id: str,
        name: str,
        category_id: Optional[str] = None
    ) -> str:
        existing = await self.find_channel_by_name(guild_id, name)
        return existing or await self.create_text_channel(guild_id, name, category_id)
