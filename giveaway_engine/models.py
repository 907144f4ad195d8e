"""Data models used for giveaway persistence and runtime state."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import FrozenSet, Mapping, Optional


class GiveawayStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    DRAWN_UNPUBLISHED = "drawn_unpublished"
    PUBLISHED = "published"


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _optional_int(value) -> Optional[int]:
    return int(value) if value is not None else None


@dataclass(slots=True)
class Giveaway:
    """One time-boxed drawing scoped to a guild channel."""
    id: str
    guild_id: int
    channel_id: int
    description: str
    end_at: datetime
    created_by: int
    created_at: datetime
    status: GiveawayStatus = GiveawayStatus.OPEN
    message_id: Optional[int] = None
    image_url: Optional[str] = None
    pending_winner_user_id: Optional[int] = None
    published_winner_user_id: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.status is GiveawayStatus.OPEN

    def to_payload(self) -> dict:
        """Serialize the giveaway to a JSON-serialisable structure."""
        return {
            "id": self.id,
            "guild_id": self.guild_id,
            "channel_id": self.channel_id,
            "message_id": self.message_id,
            "description": self.description,
            "image_url": self.image_url,
            "end_at": self.end_at.isoformat(),
            "status": self.status.value,
            "pending_winner_user_id": self.pending_winner_user_id,
            "published_winner_user_id": self.published_winner_user_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Mapping) -> "Giveaway":
        """Rebuild a Giveaway from a ``sqlite3.Row`` or payload mapping."""
        return cls(
            id=str(row["id"]),
            guild_id=int(row["guild_id"]),
            channel_id=int(row["channel_id"]),
            message_id=_optional_int(row["message_id"]),
            description=str(row["description"]),
            image_url=row["image_url"],
            end_at=_parse_timestamp(row["end_at"]),
            status=GiveawayStatus(row["status"]),
            pending_winner_user_id=_optional_int(row["pending_winner_user_id"]),
            published_winner_user_id=_optional_int(row["published_winner_user_id"]),
            created_by=int(row["created_by"]),
            created_at=_parse_timestamp(row["created_at"]),
        )


@dataclass(slots=True)
class Entry:
    """A participant's withdrawable entry in a giveaway."""
    giveaway_id: str
    user_id: int
    tickets: int
    entered_at: datetime
    withdrawn_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.withdrawn_at is None

    @classmethod
    def from_row(cls, row: Mapping) -> "Entry":
        withdrawn_raw = row["withdrawn_at"]
        return cls(
            giveaway_id=str(row["giveaway_id"]),
            user_id=int(row["user_id"]),
            tickets=int(row["tickets"]),
            entered_at=_parse_timestamp(row["entered_at"]),
            withdrawn_at=_parse_timestamp(withdrawn_raw) if withdrawn_raw else None,
        )


@dataclass(slots=True, frozen=True)
class Participant:
    """Snapshot of the member context needed for eligibility and tickets."""
    user_id: int
    guild_id: int
    role_ids: FrozenSet[int] = field(default_factory=frozenset)
    is_booster: bool = False

    def has_role(self, role_id: Optional[int]) -> bool:
        return role_id is not None and role_id in self.role_ids
