"""Tests for the status message renderer."""

import pytest

from giveaway_engine.config import EligibilityConfig, GiveawayConfig, TicketWeights
from giveaway_engine.models import GiveawayStatus
from giveaway_engine.rendering import STATUS_COLORS, GiveawayRenderer

from .conftest import MEMBER_ROLE_ID, TAG_ROLE_ID, make_giveaway


@pytest.fixture
def renderer(giveaway_config):
    return GiveawayRenderer(giveaway_config)


def enabled_actions(payload):
    return {control.action for control in payload.panel_controls if control.enabled}


class TestRender:
    def test_open_giveaway(self, renderer):
        giveaway = make_giveaway()
        payload = renderer.render(giveaway, 3)

        assert payload.title == "🎁 Giveaway"
        assert payload.color == STATUS_COLORS[GiveawayStatus.OPEN]
        assert "**Entries:** 3" in payload.body
        assert "**Status:** Open" in payload.body
        assert f"<t:{int(giveaway.end_at.timestamp())}:f>" in payload.body
        assert "**Winner:** t.b.d." in payload.body
        assert [c.action for c in payload.controls] == ["join", "withdraw"]
        assert enabled_actions(payload) == {"close", "delete"}

    def test_render_is_repeatable(self, renderer):
        giveaway = make_giveaway()
        assert renderer.render(giveaway, 1) == renderer.render(giveaway, 1)

    def test_closed_giveaway_hides_participant_controls(self, renderer):
        payload = renderer.render(make_giveaway(status=GiveawayStatus.CLOSED), 2)
        assert payload.controls == ()
        assert "**Status:** Closed" in payload.body
        assert enabled_actions(payload) == {"open", "draw", "delete"}

    def test_closed_without_entries_cannot_draw(self, renderer):
        payload = renderer.render(make_giveaway(status=GiveawayStatus.CLOSED), 0)
        assert enabled_actions(payload) == {"open", "delete"}

    def test_pending_winner(self, renderer):
        giveaway = make_giveaway(
            status=GiveawayStatus.DRAWN_UNPUBLISHED, pending_winner_user_id=55
        )
        payload = renderer.render(giveaway, 2)
        assert "Pending Approval" in payload.body
        assert "<@55>" not in payload.body
        assert "**Status:**" not in payload.body
        assert enabled_actions(payload) == {"reroll", "publish", "delete"}

    def test_published_winner(self, renderer):
        giveaway = make_giveaway(
            status=GiveawayStatus.PUBLISHED, published_winner_user_id=55
        )
        payload = renderer.render(giveaway, 2)
        assert payload.title == "🎉 Winner"
        assert payload.description.startswith("**<@55>**")
        assert "Congrats: <@55>" in payload.body
        assert payload.controls == ()
        assert enabled_actions(payload) == {"delete"}

    def test_image_is_carried(self, renderer):
        payload = renderer.render(make_giveaway(image_url="https://cdn.example/a.png"), 0)
        assert payload.image_url == "https://cdn.example/a.png"


class TestRequirementsText:
    def test_roles_and_bonus_listed(self, renderer):
        body = renderer.render(make_giveaway(), 0).body
        assert f"<@&{MEMBER_ROLE_ID}>" in body
        assert f"Or <@&{TAG_ROLE_ID}> Equipped ≥ 30 Days" in body
        assert "Server Boosters Get +1 Ticket" in body

    def test_no_bonus_line_when_capped(self):
        config = GiveawayConfig(
            eligibility=EligibilityConfig(member_role_id=1),
            weights=TicketWeights(base=2, booster_bonus=3, max_total=2),
        )
        body = GiveawayRenderer(config).render(make_giveaway(), 0).body
        assert "Increase Your Chances" not in body
