"""Discord adapter for the giveaway status message."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import discord

from .ports import DisplayPayload, MessageRef

log = logging.getLogger(__name__)

ViewFactory = Callable[[DisplayPayload], Optional[discord.ui.View]]


class DisplayUnavailable(RuntimeError):
    """Raised when the target channel cannot be resolved."""


def build_embed(payload: DisplayPayload) -> discord.Embed:
    embed = discord.Embed(
        title=payload.title,
        description=payload.description,
        color=discord.Color(payload.color),
    )
    embed.add_field(name="\u200b", value=payload.body, inline=False)
    embed.set_footer(text=payload.footer)
    if payload.image_url:
        embed.set_image(url=payload.image_url)
    return embed


class DiscordDisplay:
    def __init__(self, bot: discord.Client, view_factory: ViewFactory) -> None:
        self.bot = bot
        self.view_factory = view_factory

    async def post_message(self, channel_id: int, payload: DisplayPayload) -> MessageRef:
        channel = await self._fetch_text_channel(channel_id)
        if channel is None:
            raise DisplayUnavailable(f"Channel {channel_id} is not available.")
        kwargs = {"embed": build_embed(payload)}
        view = self.view_factory(payload)
        if view is not None:
            kwargs["view"] = view
        message = await channel.send(**kwargs)
        return MessageRef(
            channel_id=channel_id, message_id=message.id, jump_url=message.jump_url
        )

    async def edit_message(
        self, channel_id: int, message_id: int, payload: DisplayPayload
    ) -> None:
        message = await self.fetch_message(channel_id, message_id)
        if message is None:
            log.warning(
                "Giveaway message %s in channel %s is gone; skipping refresh.",
                message_id,
                channel_id,
            )
            return
        await message.edit(embed=build_embed(payload), view=self.view_factory(payload))

    async def delete_message(self, channel_id: int, message_id: int) -> None:
        channel = await self._fetch_text_channel(channel_id)
        if channel is None:
            log.warning("Channel %s unavailable; message %s left in place.", channel_id, message_id)
            return
        try:
            await channel.get_partial_message(message_id).delete()
        except discord.NotFound:
            log.debug("Message %s in channel %s already deleted.", message_id, channel_id)

    def attach_controls(self, message_id: int, payload: DisplayPayload) -> None:
        """Bind a persistent view to an existing message without editing it."""
        view = self.view_factory(payload)
        if view is None:
            return
        self.bot.add_view(view, message_id=message_id)

    async def fetch_message(
        self, channel_id: int, message_id: int
    ) -> Optional[discord.Message]:
        channel = await self._fetch_text_channel(channel_id)
        if channel is None:
            return None
        try:
            return await channel.fetch_message(message_id)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException):
            return None

    async def _fetch_text_channel(
        self, channel_id: int
    ) -> Optional[discord.TextChannel]:
        channel = self.bot.get_channel(channel_id)
        if isinstance(channel, discord.TextChannel):
            return channel
        try:
            fetched = await self.bot.fetch_channel(channel_id)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException):
            return None
        return fetched if isinstance(fetched, discord.TextChannel) else None
