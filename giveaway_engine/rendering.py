from __future__ import annotations

from typing import Optional

from .config import GiveawayConfig
from .models import Giveaway, GiveawayStatus
from .ports import Control, DisplayPayload

STATUS_COLORS = {
    GiveawayStatus.OPEN: 0x4ECDC4,
    GiveawayStatus.CLOSED: 0x45B7D1,
    GiveawayStatus.DRAWN_UNPUBLISHED: 0x96CEB4,
    GiveawayStatus.PUBLISHED: 0xFFEAA7,
}

STATUS_LABELS = {
    GiveawayStatus.OPEN: "Open",
    GiveawayStatus.CLOSED: "Closed",
}

DIVIDER = "┈┈┈┈┈"


def _mention(user_id: Optional[int]) -> str:
    return f"<@{user_id}>" if user_id is not None else "unknown"


class GiveawayRenderer:
    """Maps a giveaway record to the payload shown in its channel.

    ``render`` only looks at its arguments and the static config, so calling
    it again after any mutation reproduces the correct message.
    """

    def __init__(self, config: GiveawayConfig) -> None:
        self.config = config

    def render(self, giveaway: Giveaway, active_entry_count: int) -> DisplayPayload:
        status = giveaway.status
        published = status is GiveawayStatus.PUBLISHED

        if published:
            title = "🎉 Winner"
            description = (
                f"**{_mention(giveaway.published_winner_user_id)}**\n"
                f"{giveaway.description}"
            )
            winner_line = f"Congrats: {_mention(giveaway.published_winner_user_id)}"
        else:
            title = "🎁 Giveaway"
            description = f"@everyone\n{giveaway.description}"
            if status is GiveawayStatus.DRAWN_UNPUBLISHED:
                winner_line = "Pending Approval"
            else:
                winner_line = "t.b.d."

        end_ts = int(giveaway.end_at.timestamp())
        lines = [
            f"**Signups Close:** <t:{end_ts}:f>  **Entries:** {active_entry_count}"
        ]
        status_label = STATUS_LABELS.get(status)
        if status_label:
            lines.append(f"**Status:** {status_label}")
        lines.extend([DIVIDER, "**Eligibility:**", *self._eligibility_lines()])
        bonus_line = self._bonus_line()
        if bonus_line:
            lines.extend([DIVIDER, "**Increase Your Chances:**", bonus_line])
        lines.extend([DIVIDER, f"**Winner:** {winner_line}"])

        return DisplayPayload(
            giveaway_id=giveaway.id,
            title=title,
            description=description,
            color=STATUS_COLORS[status],
            body="\n".join(lines),
            footer="press join to enter, withdraw to leave",
            image_url=giveaway.image_url,
            controls=self._participant_controls(giveaway),
            panel_controls=self.panel_controls(giveaway, active_entry_count),
        )

    @staticmethod
    def panel_controls(
        giveaway: Giveaway, active_entry_count: int
    ) -> tuple[Control, ...]:
        status = giveaway.status
        has_entries = active_entry_count > 0
        return (
            Control("open", "Open", "success", status is GiveawayStatus.CLOSED),
            Control("close", "Close", "danger", status is GiveawayStatus.OPEN),
            Control(
                "draw",
                "Draw",
                "primary",
                status is GiveawayStatus.CLOSED and has_entries,
            ),
            Control(
                "reroll",
                "Reroll",
                "secondary",
                status is GiveawayStatus.DRAWN_UNPUBLISHED and has_entries,
            ),
            Control(
                "publish",
                "Publish",
                "success",
                status is GiveawayStatus.DRAWN_UNPUBLISHED
                and giveaway.pending_winner_user_id is not None,
            ),
            Control("delete", "Delete", "danger", True),
        )

    @staticmethod
    def _participant_controls(giveaway: Giveaway) -> tuple[Control, ...]:
        if not giveaway.is_open:
            return ()
        return (
            Control("join", "Join", "primary"),
            Control("withdraw", "Withdraw", "secondary"),
        )

    def _eligibility_lines(self) -> list[str]:
        rules = self.config.eligibility
        lines = []
        if rules.member_role_id:
            lines.append(f"• <@&{rules.member_role_id}>")
        if rules.tag_role_id:
            prefix = "Or " if lines else ""
            lines.append(
                f"• {prefix}<@&{rules.tag_role_id}> Equipped ≥ {rules.min_role_age_days} Days"
            )
        return lines or ["• Entry requirements not configured"]

    def _bonus_line(self) -> Optional[str]:
        weights = self.config.weights
        bonus = min(weights.base + weights.booster_bonus, weights.max_total) - min(
            weights.base, weights.max_total
        )
        if bonus <= 0:
            return None
        suffix = "Ticket" if bonus == 1 else "Tickets"
        return f"Server Boosters Get +{bonus} {suffix}"
