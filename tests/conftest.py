from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta
from typing import Optional

import pytest
import pytest_asyncio

from giveaway_engine.config import EligibilityConfig, GiveawayConfig, TicketWeights
from giveaway_engine.giveaway_manager import GiveawayManager
from giveaway_engine.models import Giveaway, GiveawayStatus, Participant
from giveaway_engine.ports import DisplayPayload, MessageRef
from giveaway_engine.storage import GiveawayStorage
from giveaway_engine.timers import TimerRegistry

GUILD_ID = 1
CHANNEL_ID = 500
MEMBER_ROLE_ID = 10
TAG_ROLE_ID = 20


class FakeDisplay:
    """In-memory stand-in for the Discord status message."""

    def __init__(self) -> None:
        self.messages: dict[int, DisplayPayload] = {}
        self.posted: list[tuple[int, DisplayPayload]] = []
        self.edits: list[tuple[int, int, DisplayPayload]] = []
        self.deleted: list[tuple[int, int]] = []
        self.attached: list[tuple[int, DisplayPayload]] = []
        self.fail_post = False
        self.fail_edit = False
        self.fail_delete = False
        self._next_id = 9000

    async def post_message(self, channel_id: int, payload: DisplayPayload) -> MessageRef:
        if self.fail_post:
            raise RuntimeError("display unavailable")
        self._next_id += 1
        self.messages[self._next_id] = payload
        self.posted.append((channel_id, payload))
        return MessageRef(
            channel_id=channel_id,
            message_id=self._next_id,
            jump_url=f"https://discord.com/channels/{GUILD_ID}/{channel_id}/{self._next_id}",
        )

    async def edit_message(self, channel_id: int, message_id: int, payload: DisplayPayload) -> None:
        if self.fail_edit:
            raise RuntimeError("edit failed")
        self.edits.append((channel_id, message_id, payload))
        if message_id in self.messages:
            self.messages[message_id] = payload

    async def delete_message(self, channel_id: int, message_id: int) -> None:
        if self.fail_delete:
            raise RuntimeError("delete failed")
        self.deleted.append((channel_id, message_id))
        self.messages.pop(message_id, None)

    async def fetch_message(self, channel_id: int, message_id: int) -> Optional[DisplayPayload]:
        return self.messages.get(message_id)

    def attach_controls(self, message_id: int, payload: DisplayPayload) -> None:
        self.attached.append((message_id, payload))

    @property
    def last_payload(self) -> DisplayPayload:
        if self.edits:
            return self.edits[-1][2]
        return self.posted[-1][1]


def make_giveaway(**overrides) -> Giveaway:
    now = datetime.now(tz=UTC)
    values = dict(
        id="gw_test",
        guild_id=GUILD_ID,
        channel_id=CHANNEL_ID,
        description="A shiny prize",
        end_at=now + timedelta(hours=1),
        created_by=42,
        created_at=now,
        status=GiveawayStatus.OPEN,
        message_id=7777,
    )
    values.update(overrides)
    return Giveaway(**values)


def member(user_id: int, *, booster: bool = False, roles=(MEMBER_ROLE_ID,)) -> Participant:
    return Participant(
        user_id=user_id,
        guild_id=GUILD_ID,
        role_ids=frozenset(roles),
        is_booster=booster,
    )


@pytest.fixture
def giveaway_config() -> GiveawayConfig:
    return GiveawayConfig(
        eligibility=EligibilityConfig(
            member_role_id=MEMBER_ROLE_ID, tag_role_id=TAG_ROLE_ID, min_role_age_days=30
        ),
        weights=TicketWeights(base=1, booster_bonus=1, max_total=2),
    )


@pytest.fixture
def storage(tmp_path) -> GiveawayStorage:
    return GiveawayStorage(tmp_path / "giveaways.sqlite")


@pytest.fixture
def display() -> FakeDisplay:
    return FakeDisplay()


@pytest_asyncio.fixture
async def manager(storage, display, giveaway_config):
    manager = GiveawayManager(
        storage,
        display,
        giveaway_config,
        timers=TimerRegistry(),
        rng=random.Random(1234),
    )
    yield manager
    manager.shutdown()
