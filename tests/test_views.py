"""Tests for the Discord interaction views."""

import sqlite3
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from giveaway_engine.errors import NotEligibleError, PreconditionError
from giveaway_engine.rendering import GiveawayRenderer
from giveaway_engine.views import (
    GENERIC_FAILURE,
    GiveawayPanelView,
    GiveawayView,
    is_admin,
    participant_from_member,
    perform,
)

from .conftest import GUILD_ID, MEMBER_ROLE_ID, make_giveaway


def discord_member(user_id=1, *, roles=(), owner_id=999, administrator=False, manage_guild=False):
    member = MagicMock(spec=discord.Member)
    member.id = user_id
    member.guild = SimpleNamespace(id=GUILD_ID, owner_id=owner_id)
    member.roles = [SimpleNamespace(id=role_id) for role_id in roles]
    member.guild_permissions = SimpleNamespace(
        administrator=administrator, manage_guild=manage_guild
    )
    member.premium_since = None
    return member


def interaction_for(user):
    interaction = MagicMock()
    interaction.user = user
    interaction.guild = user.guild
    interaction.response.defer = AsyncMock()
    interaction.response.send_message = AsyncMock()
    interaction.edit_original_response = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


class TestPerform:
    @pytest.mark.asyncio
    async def test_success(self):
        async def action():
            return "done"

        assert await perform(action, context="test") == "done"

    @pytest.mark.asyncio
    async def test_domain_error_becomes_reply(self):
        async def action():
            raise PreconditionError("Signups are closed.")

        assert await perform(action, context="test") == "Signups are closed."

    @pytest.mark.asyncio
    async def test_infrastructure_error_is_generic(self, caplog):
        async def action():
            raise sqlite3.OperationalError("database is locked")

        assert await perform(action, context="join:gw") == GENERIC_FAILURE
        assert "Giveaway action join:gw failed" in caplog.text

    @pytest.mark.asyncio
    async def test_programming_errors_propagate(self):
        async def action():
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await perform(action, context="test")


class TestMemberHelpers:
    def test_participant_from_member(self):
        member = discord_member(5, roles=(MEMBER_ROLE_ID, 77))
        member.premium_since = object()
        participant = participant_from_member(member)
        assert participant.user_id == 5
        assert participant.guild_id == GUILD_ID
        assert participant.role_ids == frozenset({MEMBER_ROLE_ID, 77})
        assert participant.is_booster is True

    @pytest.mark.parametrize(
        "kwargs, expected",
        [
            ({}, False),
            ({"owner_id": 1}, True),
            ({"administrator": True}, True),
            ({"manage_guild": True}, True),
            ({"roles": (300,)}, True),
            ({"roles": (301,)}, False),
        ],
    )
    def test_is_admin(self, kwargs, expected):
        assert is_admin(discord_member(1, **kwargs), [300]) is expected


class TestGiveawayView:
    @pytest.mark.asyncio
    async def test_buttons_follow_controls(self, giveaway_config):
        payload = GiveawayRenderer(giveaway_config).render(make_giveaway(), 0)
        view = GiveawayView(MagicMock(), "gw_test", payload.controls)

        assert view.timeout is None
        assert [item.custom_id for item in view.children] == [
            "giveaway:join:gw_test",
            "giveaway:withdraw:gw_test",
        ]

    @pytest.mark.asyncio
    async def test_join_replies_with_tickets(self):
        manager = MagicMock()
        manager.add_entry = AsyncMock(return_value=2)
        view = GiveawayView(manager, "gw_test", ())
        interaction = interaction_for(discord_member(5, roles=(MEMBER_ROLE_ID,)))

        await view.join_callback(interaction)

        interaction.response.defer.assert_awaited_once_with(ephemeral=True, thinking=True)
        participant = manager.add_entry.await_args.args[1]
        assert participant.user_id == 5
        interaction.followup.send.assert_awaited_once_with(
            "You're in with 2 tickets! Good luck!", ephemeral=True
        )

    @pytest.mark.asyncio
    async def test_join_rejection_is_reported(self):
        manager = MagicMock()
        manager.add_entry = AsyncMock(
            side_effect=NotEligibleError("You are not eligible to join this giveaway.")
        )
        view = GiveawayView(manager, "gw_test", ())
        interaction = interaction_for(discord_member(5))

        await view.join_callback(interaction)

        interaction.followup.send.assert_awaited_once_with(
            "You are not eligible to join this giveaway.", ephemeral=True
        )

    @pytest.mark.asyncio
    async def test_withdraw(self):
        manager = MagicMock()
        manager.withdraw_entry = AsyncMock()
        view = GiveawayView(manager, "gw_test", ())
        interaction = interaction_for(discord_member(5))

        await view.withdraw_callback(interaction)

        manager.withdraw_entry.assert_awaited_once_with("gw_test", 5)
        interaction.followup.send.assert_awaited_once_with(
            "You've withdrawn from the giveaway.", ephemeral=True
        )

    @pytest.mark.asyncio
    async def test_unexpected_error_after_defer_gets_reply(self, caplog):
        view = GiveawayView(MagicMock(), "gw_test", ())
        interaction = interaction_for(discord_member(5))
        interaction.response.is_done = MagicMock(return_value=True)

        item = MagicMock(custom_id="giveaway:join:gw_test")
        await view.on_error(interaction, KeyError("bug"), item)

        interaction.followup.send.assert_awaited_once_with(GENERIC_FAILURE, ephemeral=True)
        assert "Button giveaway:join:gw_test failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_error_before_defer_gets_reply(self):
        view = GiveawayPanelView(MagicMock(), "gw_test", (), [300])
        interaction = interaction_for(discord_member(5))
        interaction.response.is_done = MagicMock(return_value=False)

        await view.on_error(interaction, RuntimeError("boom"), MagicMock())

        interaction.response.send_message.assert_awaited_once_with(
            GENERIC_FAILURE, ephemeral=True
        )
        interaction.followup.send.assert_not_awaited()


class TestGiveawayPanelView:
    @pytest.fixture
    def manager(self):
        manager = MagicMock()
        for name in (
            "open_signups",
            "close_signups",
            "draw",
            "reroll",
            "publish",
            "delete_giveaway",
            "get_giveaway",
            "panel_controls",
        ):
            setattr(manager, name, AsyncMock())
        manager.draw.return_value = 7
        manager.reroll.return_value = 8
        manager.publish.return_value = 8
        manager.panel_controls.return_value = ()
        return manager

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "action, method, reply",
        [
            ("open", "open_signups", "Signups opened."),
            ("close", "close_signups", "Signups closed."),
            ("draw", "draw", "Drawn <@7>, pending approval. Publish or reroll."),
            ("reroll", "reroll", "Rerolled: <@8>, pending approval."),
            ("publish", "publish", "Published winner <@8>."),
            ("delete", "delete_giveaway", "Giveaway deleted."),
        ],
    )
    async def test_run_action(self, manager, action, method, reply):
        view = GiveawayPanelView(manager, "gw_test", (), [300])
        assert await view.run_action(action) == reply
        getattr(manager, method).assert_awaited_once_with("gw_test")

    @pytest.mark.asyncio
    async def test_run_action_reports_precondition(self, manager):
        manager.draw.side_effect = PreconditionError("Close signups before drawing a winner.")
        view = GiveawayPanelView(manager, "gw_test", (), [300])
        assert await view.run_action("draw") == "Close signups before drawing a winner."

    @pytest.mark.asyncio
    async def test_non_admin_is_refused(self, manager):
        view = GiveawayPanelView(manager, "gw_test", (), [300])
        interaction = interaction_for(discord_member(5))

        await view.handle(interaction, "close")

        manager.close_signups.assert_not_awaited()
        interaction.response.send_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_admin_action_refreshes_panel(self, manager):
        manager.get_giveaway.return_value = make_giveaway()
        view = GiveawayPanelView(manager, "gw_test", (), [300])
        interaction = interaction_for(discord_member(5, roles=(300,)))

        await view.handle(interaction, "close")

        manager.close_signups.assert_awaited_once_with("gw_test")
        new_view = interaction.edit_original_response.await_args.kwargs["view"]
        assert isinstance(new_view, GiveawayPanelView)
        interaction.followup.send.assert_awaited_once_with("Signups closed.", ephemeral=True)

    @pytest.mark.asyncio
    async def test_panel_removed_after_delete(self, manager):
        manager.get_giveaway.return_value = None
        view = GiveawayPanelView(manager, "gw_test", (), [300])
        interaction = interaction_for(discord_member(5, administrator=True))

        await view.handle(interaction, "delete")

        interaction.edit_original_response.assert_awaited_once_with(view=None)
