"""Narrow interfaces the lifecycle depends on.

``GiveawayStorage`` (SQLite) and ``DiscordDisplay`` are the production
adapters; tests substitute in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol, Sequence

from .models import Entry, Giveaway, GiveawayStatus


@dataclass(slots=True, frozen=True)
class Control:
    """A button in the rendered payload."""
    action: str
    label: str
    style: str = "secondary"
    enabled: bool = True


@dataclass(slots=True)
class DisplayPayload:
    """Everything needed to draw the status message for one giveaway."""
    giveaway_id: str
    title: str
    description: str
    color: int
    body: str
    footer: str
    image_url: Optional[str] = None
    controls: tuple[Control, ...] = ()
    panel_controls: tuple[Control, ...] = ()


@dataclass(slots=True, frozen=True)
class MessageRef:
    channel_id: int
    message_id: int
    jump_url: Optional[str] = None


class GiveawayStore(Protocol):
    async def create_record(self, giveaway: Giveaway) -> None: ...

    async def get_by_id(self, giveaway_id: str) -> Optional[Giveaway]: ...

    async def get_open_in_channel(self, channel_id: int) -> Optional[Giveaway]: ...

    async def get_latest_in_channel(self, channel_id: int) -> Optional[Giveaway]: ...

    async def list_by_status(self, status: GiveawayStatus) -> Sequence[Giveaway]: ...

    async def update_fields(self, giveaway_id: str, fields: Mapping[str, Any]) -> None: ...

    async def delete_record(self, giveaway_id: str) -> None: ...

    async def add_entry(self, giveaway_id: str, user_id: int, tickets: int) -> None: ...

    async def withdraw_entry(self, giveaway_id: str, user_id: int) -> bool: ...

    async def list_active_entries(self, giveaway_id: str) -> Sequence[Entry]: ...

    async def count_active_entries(self, giveaway_id: str) -> int: ...

    async def get_role_first_seen(
        self, guild_id: int, user_id: int, role_id: int
    ) -> Optional[datetime]: ...

    async def record_role_first_seen(
        self,
        guild_id: int,
        user_id: int,
        role_id: int,
        seen_at: Optional[datetime] = None,
    ) -> bool: ...


class DisplayPort(Protocol):
    async def post_message(self, channel_id: int, payload: DisplayPayload) -> MessageRef: ...

    async def edit_message(
        self, channel_id: int, message_id: int, payload: DisplayPayload
    ) -> None: ...

    async def delete_message(self, channel_id: int, message_id: int) -> None: ...

    async def fetch_message(self, channel_id: int, message_id: int) -> Optional[Any]: ...

    def attach_controls(self, message_id: int, payload: DisplayPayload) -> None: ...
