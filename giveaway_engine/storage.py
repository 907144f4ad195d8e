"""SQLite persistence for giveaways, entries and role tenure."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, TypeVar

from .models import Entry, Giveaway, GiveawayStatus

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

UPDATABLE_FIELDS = frozenset(
    {
        "message_id",
        "image_url",
        "status",
        "pending_winner_user_id",
        "published_winner_user_id",
    }
)


def _to_column(value: Any) -> Any:
    if isinstance(value, GiveawayStatus):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class GiveawayStorage:
    """Async wrapper around a single SQLite database holding giveaway state.

    Each call opens its own connection inside a worker thread; the lock
    serialises statements issued from this process.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = asyncio.Lock()
        self._schema_ready = False

    # --- Giveaways ----------------------------------------------------------

    async def create_record(self, giveaway: Giveaway) -> None:
        """Insert a new giveaway row."""
        payload = giveaway.to_payload()

        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO giveaways(
                    id,
                    guild_id,
                    channel_id,
                    message_id,
                    description,
                    image_url,
                    end_at,
                    status,
                    pending_winner_user_id,
                    published_winner_user_id,
                    created_by,
                    created_at
                )
                VALUES (
                    :id,
                    :guild_id,
                    :channel_id,
                    :message_id,
                    :description,
                    :image_url,
                    :end_at,
                    :status,
                    :pending_winner_user_id,
                    :published_winner_user_id,
                    :created_by,
                    :created_at
                )
                """,
                payload,
            )

        await self._run(op)

    async def get_by_id(self, giveaway_id: str) -> Optional[Giveaway]:
        """Fetch a giveaway by id, returning None when unknown."""
        def op(conn: sqlite3.Connection) -> Optional[Giveaway]:
            row = conn.execute(
                "SELECT * FROM giveaways WHERE id = ?", (giveaway_id,)
            ).fetchone()
            return Giveaway.from_row(row) if row else None

        return await self._run(op)

    async def get_open_in_channel(self, channel_id: int) -> Optional[Giveaway]:
        """Return the most recent open giveaway in a channel."""
        def op(conn: sqlite3.Connection) -> Optional[Giveaway]:
            row = conn.execute(
                """
                SELECT * FROM giveaways
                WHERE channel_id = ? AND status = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (channel_id, GiveawayStatus.OPEN.value),
            ).fetchone()
            return Giveaway.from_row(row) if row else None

        return await self._run(op)

    async def get_latest_in_channel(self, channel_id: int) -> Optional[Giveaway]:
        """Return the most recently created giveaway in a channel, any status."""
        def op(conn: sqlite3.Connection) -> Optional[Giveaway]:
            row = conn.execute(
                """
                SELECT * FROM giveaways
                WHERE channel_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (channel_id,),
            ).fetchone()
            return Giveaway.from_row(row) if row else None

        return await self._run(op)

    async def list_by_status(self, status: GiveawayStatus) -> List[Giveaway]:
        def op(conn: sqlite3.Connection) -> List[Giveaway]:
            rows = conn.execute(
                "SELECT * FROM giveaways WHERE status = ? ORDER BY created_at",
                (status.value,),
            ).fetchall()
            return [Giveaway.from_row(row) for row in rows]

        return await self._run(op)

    async def update_fields(self, giveaway_id: str, fields: Mapping[str, Any]) -> None:
        """Apply a partial update to a giveaway row."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update giveaway fields: {sorted(unknown)}")
        if not fields:
            return
        columns = sorted(fields)
        assignments = ", ".join(f"{column} = ?" for column in columns)
        values = [_to_column(fields[column]) for column in columns]

        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                f"UPDATE giveaways SET {assignments} WHERE id = ?",
                (*values, giveaway_id),
            )

        await self._run(op)

    async def delete_record(self, giveaway_id: str) -> None:
        """Remove a giveaway together with its entries."""
        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                "DELETE FROM giveaway_entries WHERE giveaway_id = ?", (giveaway_id,)
            )
            conn.execute("DELETE FROM giveaways WHERE id = ?", (giveaway_id,))

        await self._run(op)

    # --- Entries ------------------------------------------------------------

    async def add_entry(self, giveaway_id: str, user_id: int, tickets: int) -> None:
        """Insert an entry, or reactivate an existing one with fresh tickets."""
        entered_at = datetime.now(tz=UTC).isoformat()

        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO giveaway_entries(
                    giveaway_id, user_id, tickets, entered_at, withdrawn_at
                )
                VALUES (?, ?, ?, ?, NULL)
                ON CONFLICT(giveaway_id, user_id) DO UPDATE SET
                    tickets = excluded.tickets,
                    entered_at = excluded.entered_at,
                    withdrawn_at = NULL
                """,
                (giveaway_id, user_id, tickets, entered_at),
            )

        await self._run(op)

    async def withdraw_entry(self, giveaway_id: str, user_id: int) -> bool:
        """Soft-delete an active entry. Returns False when none was active."""
        withdrawn_at = datetime.now(tz=UTC).isoformat()

        def op(conn: sqlite3.Connection) -> bool:
            cursor = conn.execute(
                """
                UPDATE giveaway_entries
                SET withdrawn_at = ?
                WHERE giveaway_id = ? AND user_id = ? AND withdrawn_at IS NULL
                """,
                (withdrawn_at, giveaway_id, user_id),
            )
            return cursor.rowcount > 0

        return await self._run(op)

    async def list_active_entries(self, giveaway_id: str) -> List[Entry]:
        """Return non-withdrawn entries in insertion order."""
        def op(conn: sqlite3.Connection) -> List[Entry]:
            rows = conn.execute(
                """
                SELECT * FROM giveaway_entries
                WHERE giveaway_id = ? AND withdrawn_at IS NULL
                ORDER BY rowid
                """,
                (giveaway_id,),
            ).fetchall()
            return [Entry.from_row(row) for row in rows]

        return await self._run(op)

    async def list_entries(self, giveaway_id: str) -> List[Entry]:
        """Return every entry including withdrawn ones."""
        def op(conn: sqlite3.Connection) -> List[Entry]:
            rows = conn.execute(
                "SELECT * FROM giveaway_entries WHERE giveaway_id = ? ORDER BY rowid",
                (giveaway_id,),
            ).fetchall()
            return [Entry.from_row(row) for row in rows]

        return await self._run(op)

    async def count_active_entries(self, giveaway_id: str) -> int:
        def op(conn: sqlite3.Connection) -> int:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total FROM giveaway_entries
                WHERE giveaway_id = ? AND withdrawn_at IS NULL
                """,
                (giveaway_id,),
            ).fetchone()
            return int(row["total"]) if row else 0

        return await self._run(op)

    # --- Role tenure --------------------------------------------------------

    async def get_role_first_seen(
        self, guild_id: int, user_id: int, role_id: int
    ) -> Optional[datetime]:
        def op(conn: sqlite3.Connection) -> Optional[datetime]:
            row = conn.execute(
                """
                SELECT first_seen_at FROM role_tenure
                WHERE guild_id = ? AND user_id = ? AND role_id = ?
                """,
                (guild_id, user_id, role_id),
            ).fetchone()
            if not row:
                return None
            seen = datetime.fromisoformat(row["first_seen_at"])
            return seen if seen.tzinfo else seen.replace(tzinfo=UTC)

        return await self._run(op)

    async def record_role_first_seen(
        self,
        guild_id: int,
        user_id: int,
        role_id: int,
        seen_at: Optional[datetime] = None,
    ) -> bool:
        """Store the first observation of a role. Later observations are ignored."""
        timestamp = (seen_at or datetime.now(tz=UTC)).astimezone(UTC).isoformat()

        def op(conn: sqlite3.Connection) -> bool:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO role_tenure(guild_id, user_id, role_id, first_seen_at)
                VALUES (?, ?, ?, ?)
                """,
                (guild_id, user_id, role_id, timestamp),
            )
            return cursor.rowcount > 0

        return await self._run(op)

    # --- Internal helpers -------------------------------------------------

    async def _run(self, op: Callable[[sqlite3.Connection], T]) -> T:
        async with self._lock:
            return await asyncio.to_thread(self._execute, op)

    def _execute(self, op: Callable[[sqlite3.Connection], T]) -> T:
        if not self._schema_ready:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        try:
            if not self._schema_ready:
                self._ensure_schema(conn)
                self._schema_ready = True
                LOGGER.debug("Giveaway schema ready at %s", self.path)
            conn.execute("BEGIN")
            result = op(conn)
            conn.commit()
            return result
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def _ensure_schema(conn: sqlite3.Connection) -> None:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS giveaways (
                id TEXT PRIMARY KEY,
                guild_id INTEGER NOT NULL,
                channel_id INTEGER NOT NULL,
                message_id INTEGER,
                description TEXT NOT NULL,
                image_url TEXT,
                end_at TEXT NOT NULL,
                status TEXT NOT NULL
                    CHECK (status IN ('open', 'closed', 'drawn_unpublished', 'published')),
                pending_winner_user_id INTEGER,
                published_winner_user_id INTEGER,
                created_by INTEGER NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_giveaways_channel_status
            ON giveaways(channel_id, status)
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS giveaway_entries (
                giveaway_id TEXT NOT NULL,
                user_id INTEGER NOT NULL,
                tickets INTEGER NOT NULL,
                entered_at TEXT NOT NULL,
                withdrawn_at TEXT,
                PRIMARY KEY (giveaway_id, user_id)
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS role_tenure (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                role_id INTEGER NOT NULL,
                first_seen_at TEXT NOT NULL,
                PRIMARY KEY (guild_id, user_id, role_id)
            )
            """
        )
        conn.commit()
