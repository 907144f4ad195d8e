from __future__ import annotations

import functools
import logging
import random
import re
import secrets
from datetime import UTC, datetime, timedelta
from typing import Optional

from .config import GiveawayConfig
from .eligibility import EligibilityEvaluator
from .errors import (
    ConflictError,
    GiveawayError,
    NotEligibleError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from .lottery import compute_tickets, select_winner
from .models import Giveaway, GiveawayStatus, Participant
from .ports import Control, DisplayPort, GiveawayStore, MessageRef
from .rendering import GiveawayRenderer
from .timers import TimerRegistry

log = logging.getLogger(__name__)

DURATION_RE = re.compile(r"([0-9]+)([mhd])")
UNIT_MS = {"m": 60_000, "h": 3_600_000, "d": 86_400_000}


def parse_duration(text: str) -> int:
    """Parse ``10m`` / ``2h`` / ``1d`` into milliseconds."""
    match = DURATION_RE.fullmatch(text or "")
    if not match:
        raise ValidationError("Invalid duration. Use a number and a unit, like 10m, 2h or 1d.")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValidationError("Duration must be greater than zero.")
    return amount * UNIT_MS[match.group(2)]


class GiveawayManager:
    """Coordinates giveaway lifecycle, persistence, rendering and timers.

    Every operation re-reads the record and checks its precondition against
    that fresh read, so a repeated button press after a transition fails with
    PreconditionError instead of applying twice.
    """

    def __init__(
        self,
        store: GiveawayStore,
        display: DisplayPort,
        config: GiveawayConfig,
        *,
        timers: Optional[TimerRegistry] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.display = display
        self.config = config
        self.timers = timers if timers is not None else TimerRegistry()
        self.rng = rng
        self.renderer = GiveawayRenderer(config)
        self.eligibility = EligibilityEvaluator(config.eligibility, store)

    # --- Creation -----------------------------------------------------------

    async def create_giveaway(
        self,
        *,
        guild_id: int,
        channel_id: int,
        description: str,
        duration_text: str,
        created_by: int,
        image_url: Optional[str] = None,
    ) -> tuple[Giveaway, MessageRef]:
        if not description or not description.strip():
            raise ValidationError("A description is required.")
        duration_ms = parse_duration(duration_text)

        existing = await self.store.get_open_in_channel(channel_id)
        if existing:
            raise ConflictError(
                "There is already an active giveaway in this channel. End it first."
            )

        now = datetime.now(tz=UTC)
        giveaway = Giveaway(
            id=self._generate_giveaway_id(),
            guild_id=guild_id,
            channel_id=channel_id,
            description=description.strip(),
            image_url=image_url,
            end_at=now + timedelta(milliseconds=duration_ms),
            created_by=created_by,
            created_at=now,
        )
        await self.store.create_record(giveaway)

        try:
            ref = await self.display.post_message(
                channel_id, self.renderer.render(giveaway, 0)
            )
        except Exception:
            log.exception(
                "Failed to post giveaway %s in channel %s; discarding record.",
                giveaway.id,
                channel_id,
            )
            await self.store.delete_record(giveaway.id)
            raise

        giveaway.message_id = ref.message_id
        await self.store.update_fields(giveaway.id, {"message_id": ref.message_id})
        self._arm_end_timer(giveaway)
        log.info(
            "Giveaway %s created in channel %s by %s, signups close at %s.",
            giveaway.id,
            channel_id,
            created_by,
            giveaway.end_at.isoformat(),
        )
        return giveaway, ref

    # --- Participant actions ------------------------------------------------

    async def add_entry(self, giveaway_id: str, participant: Participant) -> int:
        giveaway = await self._load(giveaway_id)
        if not giveaway.is_open:
            raise PreconditionError("This giveaway is not open for entries.")
        if not await self.eligibility.is_eligible(participant):
            raise NotEligibleError("You are not eligible to join this giveaway.")

        tickets = compute_tickets(participant, self.config.weights)
        await self.store.add_entry(giveaway_id, participant.user_id, tickets)
        log.info(
            "User %s entered giveaway %s with %s ticket(s).",
            participant.user_id,
            giveaway_id,
            tickets,
        )
        await self._refresh(giveaway)
        return tickets

    async def withdraw_entry(self, giveaway_id: str, user_id: int) -> None:
        giveaway = await self._load(giveaway_id)
        if not giveaway.is_open:
            raise PreconditionError("You can no longer withdraw from this giveaway.")
        withdrawn = await self.store.withdraw_entry(giveaway_id, user_id)
        if not withdrawn:
            raise PreconditionError("You are not entered in this giveaway.")
        log.info("User %s withdrew from giveaway %s.", user_id, giveaway_id)
        await self._refresh(giveaway)

    # --- Admin transitions --------------------------------------------------

    async def open_signups(self, giveaway_id: str) -> Giveaway:
        giveaway = await self._load(giveaway_id)
        if giveaway.status is not GiveawayStatus.CLOSED:
            raise PreconditionError("Signups can only be opened on a closed giveaway.")
        return await self._transition(giveaway, status=GiveawayStatus.OPEN)

    async def close_signups(self, giveaway_id: str) -> Giveaway:
        giveaway = await self._load(giveaway_id)
        if giveaway.status is not GiveawayStatus.OPEN:
            raise PreconditionError("Signups can only be closed on an open giveaway.")
        return await self._transition(giveaway, status=GiveawayStatus.CLOSED)

    async def draw(self, giveaway_id: str) -> int:
        giveaway = await self._load(giveaway_id)
        if giveaway.status is not GiveawayStatus.CLOSED:
            raise PreconditionError("Close signups before drawing a winner.")
        winner_id = await self._pick_winner(giveaway_id)
        await self._transition(
            giveaway,
            status=GiveawayStatus.DRAWN_UNPUBLISHED,
            pending_winner_user_id=winner_id,
        )
        return winner_id

    async def reroll(self, giveaway_id: str) -> int:
        # The previous pending winner stays in the pool.
        giveaway = await self._load(giveaway_id)
        if giveaway.status is not GiveawayStatus.DRAWN_UNPUBLISHED:
            raise PreconditionError("Reroll is only possible after a draw and before publishing.")
        winner_id = await self._pick_winner(giveaway_id)
        await self._transition(giveaway, pending_winner_user_id=winner_id)
        return winner_id

    async def publish(self, giveaway_id: str) -> int:
        giveaway = await self._load(giveaway_id)
        if (
            giveaway.status is not GiveawayStatus.DRAWN_UNPUBLISHED
            or giveaway.pending_winner_user_id is None
        ):
            raise PreconditionError("There is no pending winner to publish.")
        winner_id = giveaway.pending_winner_user_id
        await self._transition(
            giveaway,
            status=GiveawayStatus.PUBLISHED,
            published_winner_user_id=winner_id,
            pending_winner_user_id=None,
        )
        return winner_id

    async def delete_giveaway(self, giveaway_id: str) -> None:
        giveaway = await self._load(giveaway_id)
        if giveaway.message_id is not None:
            try:
                await self.display.delete_message(giveaway.channel_id, giveaway.message_id)
            except Exception:
                log.exception(
                    "Failed to delete message %s for giveaway %s",
                    giveaway.message_id,
                    giveaway_id,
                )
        await self.store.delete_record(giveaway_id)
        self.timers.cancel(giveaway_id)
        log.info("Giveaway %s deleted.", giveaway_id)

    # --- Restart recovery ---------------------------------------------------

    async def restore_open_giveaways(self) -> int:
        """Re-arm timers for open giveaways; close the ones that expired offline."""
        restored = 0
        now = datetime.now(tz=UTC)
        for giveaway in await self.store.list_by_status(GiveawayStatus.OPEN):
            if giveaway.end_at <= now:
                try:
                    await self.close_signups(giveaway.id)
                except GiveawayError as exc:
                    log.info("Skipped closing overdue giveaway %s: %s", giveaway.id, exc)
                except Exception:
                    log.exception("Failed to close overdue giveaway %s", giveaway.id)
                continue
            if self.timers.is_armed(giveaway.id):
                continue
            self._arm_end_timer(giveaway, now=now)
            await self._attach_controls(giveaway)
            await self._refresh(giveaway)
            restored += 1
        log.info("Restored %s open giveaway(s) on startup.", restored)
        return restored

    def shutdown(self) -> None:
        self.timers.cancel_all()

    # --- Lookups ------------------------------------------------------------

    async def get_giveaway(self, giveaway_id: str) -> Optional[Giveaway]:
        return await self.store.get_by_id(giveaway_id)

    async def get_active_giveaway(self, channel_id: int) -> Optional[Giveaway]:
        return await self.store.get_open_in_channel(channel_id)

    async def get_latest_giveaway(self, channel_id: int) -> Optional[Giveaway]:
        return await self.store.get_latest_in_channel(channel_id)

    async def panel_controls(self, giveaway: Giveaway) -> tuple[Control, ...]:
        count = await self.store.count_active_entries(giveaway.id)
        return self.renderer.panel_controls(giveaway, count)

    # --- Internal helpers -------------------------------------------------

    async def _load(self, giveaway_id: str) -> Giveaway:
        giveaway = await self.store.get_by_id(giveaway_id)
        if giveaway is None:
            raise NotFoundError("This giveaway is no longer available.")
        return giveaway

    async def _pick_winner(self, giveaway_id: str) -> int:
        entries = await self.store.list_active_entries(giveaway_id)
        return select_winner(entries, self.rng)

    async def _transition(self, giveaway: Giveaway, **fields) -> Giveaway:
        await self.store.update_fields(giveaway.id, fields)
        for name, value in fields.items():
            setattr(giveaway, name, value)
        log.info(
            "Giveaway %s updated: %s",
            giveaway.id,
            ", ".join(f"{name}={getattr(value, 'value', value)}" for name, value in fields.items()),
        )
        await self._refresh(giveaway)
        return giveaway

    async def _refresh(self, giveaway: Giveaway) -> None:
        if giveaway.message_id is None:
            log.warning("Giveaway %s has no message to refresh.", giveaway.id)
            return
        try:
            count = await self.store.count_active_entries(giveaway.id)
            payload = self.renderer.render(giveaway, count)
            await self.display.edit_message(
                giveaway.channel_id, giveaway.message_id, payload
            )
        except Exception:
            log.exception("Failed to refresh giveaway message for %s", giveaway.id)

    async def _attach_controls(self, giveaway: Giveaway) -> None:
        # Registered locally, independent of the refresh edit below.
        if giveaway.message_id is None:
            return
        count = await self.store.count_active_entries(giveaway.id)
        self.display.attach_controls(
            giveaway.message_id, self.renderer.render(giveaway, count)
        )

    def _arm_end_timer(self, giveaway: Giveaway, *, now: Optional[datetime] = None) -> None:
        now = now or datetime.now(tz=UTC)
        delay = (giveaway.end_at - now).total_seconds()
        self.timers.arm(
            giveaway.id, delay, functools.partial(self._close_on_timer, giveaway.id)
        )

    async def _close_on_timer(self, giveaway_id: str) -> None:
        try:
            await self.close_signups(giveaway_id)
        except GiveawayError as exc:
            log.info("End timer for giveaway %s had nothing to close: %s", giveaway_id, exc)
        else:
            log.info("Signups for giveaway %s closed at end time.", giveaway_id)

    @staticmethod
    def _generate_giveaway_id() -> str:
        stamp = int(datetime.now(tz=UTC).timestamp() * 1000)
        return f"gw_{stamp}_{secrets.token_hex(4)}"
