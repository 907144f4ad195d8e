from __future__ import annotations

import logging
import sqlite3
from typing import Awaitable, Callable, Iterable, Optional, Sequence

import discord

from .display import DisplayUnavailable
from .errors import GiveawayError
from .models import Participant
from .ports import Control

log = logging.getLogger(__name__)

GENERIC_FAILURE = "Something went wrong while handling the giveaway. Please try again later."

BUTTON_STYLES = {
    "primary": discord.ButtonStyle.primary,
    "secondary": discord.ButtonStyle.secondary,
    "success": discord.ButtonStyle.success,
    "danger": discord.ButtonStyle.danger,
}


async def perform(action: Callable[[], Awaitable[str]], *, context: str) -> str:
    """Run a giveaway action and turn its outcome into a reply for the user."""
    try:
        return await action()
    except GiveawayError as exc:
        return str(exc)
    except (discord.HTTPException, sqlite3.Error, DisplayUnavailable):
        log.exception("Giveaway action %s failed", context)
        return GENERIC_FAILURE


def participant_from_member(member: discord.Member) -> Participant:
    return Participant(
        user_id=member.id,
        guild_id=member.guild.id,
        role_ids=frozenset(role.id for role in member.roles),
        is_booster=member.premium_since is not None,
    )


def is_admin(member: discord.Member, admin_role_ids: Iterable[int]) -> bool:
    guild = getattr(member, "guild", None)
    if guild is not None and getattr(guild, "owner_id", None) == member.id:
        return True
    permissions = getattr(member, "guild_permissions", None)
    if permissions is not None and (permissions.administrator or permissions.manage_guild):
        return True
    allowed = {int(role_id) for role_id in admin_role_ids}
    return any(role.id in allowed for role in member.roles)


async def report_view_error(
    interaction: discord.Interaction, error: Exception, item: discord.ui.Item
) -> None:
    """Log a failed button callback and answer with the generic failure."""
    log.error(
        "Button %s failed", getattr(item, "custom_id", None), exc_info=error
    )
    if interaction.response.is_done():
        await interaction.followup.send(GENERIC_FAILURE, ephemeral=True)
    else:
        await interaction.response.send_message(GENERIC_FAILURE, ephemeral=True)


def _button(control: Control, custom_id: str) -> discord.ui.Button:
    return discord.ui.Button(
        label=control.label,
        style=BUTTON_STYLES.get(control.style, discord.ButtonStyle.secondary),
        custom_id=custom_id,
        disabled=not control.enabled,
    )


class GiveawayView(discord.ui.View):
    """Join / Withdraw buttons attached to the public status message."""

    def __init__(self, manager, giveaway_id: str, controls: Sequence[Control]) -> None:
        super().__init__(timeout=None)
        self.manager = manager
        self.giveaway_id = giveaway_id

        callbacks = {"join": self.join_callback, "withdraw": self.withdraw_callback}
        for control in controls:
            callback = callbacks.get(control.action)
            if callback is None:
                continue
            button = _button(control, f"giveaway:{control.action}:{giveaway_id}")
            button.callback = callback  # type: ignore[assignment]
            self.add_item(button)

    async def on_error(
        self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item
    ) -> None:
        await report_view_error(interaction, error, item)

    async def join_callback(self, interaction: discord.Interaction) -> None:
        if not interaction.guild or not isinstance(interaction.user, discord.Member):
            await interaction.response.send_message(
                "You can only join giveaways from a guild.", ephemeral=True
            )
            return
        participant = participant_from_member(interaction.user)
        await interaction.response.defer(ephemeral=True, thinking=True)

        async def action() -> str:
            tickets = await self.manager.add_entry(self.giveaway_id, participant)
            noun = "ticket" if tickets == 1 else "tickets"
            return f"You're in with {tickets} {noun}! Good luck!"

        reply = await perform(action, context=f"join:{self.giveaway_id}")
        await interaction.followup.send(reply, ephemeral=True)

    async def withdraw_callback(self, interaction: discord.Interaction) -> None:
        if not interaction.guild or not isinstance(interaction.user, discord.Member):
            await interaction.response.send_message(
                "You must be part of the guild to withdraw.", ephemeral=True
            )
            return
        user_id = interaction.user.id
        await interaction.response.defer(ephemeral=True, thinking=True)

        async def action() -> str:
            await self.manager.withdraw_entry(self.giveaway_id, user_id)
            return "You've withdrawn from the giveaway."

        reply = await perform(action, context=f"withdraw:{self.giveaway_id}")
        await interaction.followup.send(reply, ephemeral=True)


class GiveawayPanelView(discord.ui.View):
    """Ephemeral management panel; buttons follow the giveaway's current state."""

    def __init__(
        self,
        manager,
        giveaway_id: str,
        controls: Sequence[Control],
        admin_role_ids: Iterable[int],
        *,
        timeout: Optional[float] = 600,
    ) -> None:
        super().__init__(timeout=timeout)
        self.manager = manager
        self.giveaway_id = giveaway_id
        self.admin_role_ids = list(admin_role_ids)

        for control in controls:
            button = _button(control, f"giveaway:panel:{control.action}:{giveaway_id}")
            button.callback = self._make_callback(control.action)  # type: ignore[assignment]
            self.add_item(button)

    async def on_error(
        self, interaction: discord.Interaction, error: Exception, item: discord.ui.Item
    ) -> None:
        await report_view_error(interaction, error, item)

    def _make_callback(self, action: str):
        async def callback(interaction: discord.Interaction) -> None:
            await self.handle(interaction, action)

        return callback

    async def run_action(self, action: str) -> str:
        giveaway_id = self.giveaway_id
        manager = self.manager

        async def run() -> str:
            if action == "open":
                await manager.open_signups(giveaway_id)
                return "Signups opened."
            if action == "close":
                await manager.close_signups(giveaway_id)
                return "Signups closed."
            if action == "draw":
                winner_id = await manager.draw(giveaway_id)
                return f"Drawn <@{winner_id}>, pending approval. Publish or reroll."
            if action == "reroll":
                winner_id = await manager.reroll(giveaway_id)
                return f"Rerolled: <@{winner_id}>, pending approval."
            if action == "publish":
                winner_id = await manager.publish(giveaway_id)
                return f"Published winner <@{winner_id}>."
            if action == "delete":
                await manager.delete_giveaway(giveaway_id)
                return "Giveaway deleted."
            return "Unsupported action."

        return await perform(run, context=f"{action}:{giveaway_id}")

    async def handle(self, interaction: discord.Interaction, action: str) -> None:
        if not isinstance(interaction.user, discord.Member) or not is_admin(
            interaction.user, self.admin_role_ids
        ):
            await interaction.response.send_message(
                "You do not have permission to manage giveaways.", ephemeral=True
            )
            return

        await interaction.response.defer()
        reply = await self.run_action(action)

        giveaway = await self.manager.get_giveaway(self.giveaway_id)
        if giveaway is None:
            await interaction.edit_original_response(view=None)
        else:
            controls = await self.manager.panel_controls(giveaway)
            await interaction.edit_original_response(
                view=GiveawayPanelView(
                    self.manager, self.giveaway_id, controls, self.admin_role_ids
                )
            )
        await interaction.followup.send(reply, ephemeral=True)
