"""SQLite session store.

One database file holds everything that must survive between hook runs.
Each hook run opens its own BattleStore and closes it before exiting; nothing
is cached in memory across runs.

Tables:

    battle_state      one row per session: latest BattleState as JSON (upsert)
    battle_events     append-only event log, autoincrement id
    previous_todos    one row per session: last seen todo snapshot as JSON
    session_anchors   one row per session: first generated image path
    party_members     roster, seeded with the default party when empty

The relations are not updated in one transaction. A crash between two writes
can leave previous_todos ahead of battle_state; the detector recomputes from
its inputs on the next run, so that is tolerated.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from types import TracebackType
from typing import Any

from jrpg_visualizer.jrpg import DEFAULT_PARTY
from jrpg_visualizer.models import BattleEvent, BattleState, PartyMember, TodoItem

logger = logging.getLogger(__name__)

CREATE_BATTLE_STATE_TABLE = """
    CREATE TABLE IF NOT EXISTS battle_state (
        session_id TEXT PRIMARY KEY,
        state_json TEXT NOT NULL,
        updated_at INTEGER NOT NULL
    )
"""

CREATE_BATTLE_EVENTS_TABLE = """
    CREATE TABLE IF NOT EXISTS battle_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL,
        event_type TEXT NOT NULL,
        task_content TEXT,
        description TEXT,
        image_path TEXT,
        damage_dealt INTEGER DEFAULT 0,
        created_at INTEGER NOT NULL
    )
"""

CREATE_PARTY_MEMBERS_TABLE = """
    CREATE TABLE IF NOT EXISTS party_members (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        class TEXT NOT NULL,
        max_hp INTEGER NOT NULL,
        current_hp INTEGER NOT NULL,
        max_mp INTEGER NOT NULL,
        current_mp INTEGER NOT NULL,
        level INTEGER DEFAULT 1,
        experience INTEGER DEFAULT 0
    )
"""

CREATE_PREVIOUS_TODOS_TABLE = """
    CREATE TABLE IF NOT EXISTS previous_todos (
        session_id TEXT PRIMARY KEY,
        todos_json TEXT NOT NULL,
        updated_at INTEGER NOT NULL
    )
"""

CREATE_SESSION_ANCHORS_TABLE = """
    CREATE TABLE IF NOT EXISTS session_anchors (
        session_id TEXT PRIMARY KEY,
        anchor_path TEXT NOT NULL,
        created_at INTEGER NOT NULL
    )
"""

ALL_TABLES = [
    CREATE_BATTLE_STATE_TABLE,
    CREATE_BATTLE_EVENTS_TABLE,
    CREATE_PARTY_MEMBERS_TABLE,
    CREATE_PREVIOUS_TODOS_TABLE,
    CREATE_SESSION_ANCHORS_TABLE,
]

ALL_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_events_session ON battle_events(session_id)",
    "CREATE INDEX IF NOT EXISTS idx_events_created ON battle_events(created_at)",
]

_EVENT_COLUMNS = (
    "id, session_id, event_type, task_content, description, image_path, damage_dealt, created_at"
)


def _now_ms() -> int:
    return int(time.time() * 1000)


class BattleStore:
    """Per-invocation handle on the battle database. Use as a context manager."""

    def __init__(self, db_path: Path | str) -> None:
        self._path = Path(db_path)
        if str(db_path) != ":memory:":
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._create_tables()
        if self._party_count() == 0:
            self.seed_party()

    def __enter__(self) -> BattleStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _create_tables(self) -> None:
        with self._conn:
            for table_sql in ALL_TABLES:
                self._conn.execute(table_sql)
            for index_sql in ALL_INDEXES:
                self._conn.execute(index_sql)

    def _party_count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS count FROM party_members").fetchone()
        return row["count"]

    # ------------------------------------------------------------------
    # Party roster
    # ------------------------------------------------------------------

    def seed_party(self, force: bool = False) -> list[PartyMember]:
        """Insert the default party. With force, the existing roster is replaced."""
        with self._conn:
            if force:
                self._conn.execute("DELETE FROM party_members")
            elif self._party_count() > 0:
                return self.get_party_members()
            self._conn.executemany(
                """
                INSERT INTO party_members
                    (name, class, max_hp, current_hp, max_mp, current_mp, level, experience)
                VALUES
                    (:name, :class, :max_hp, :current_hp, :max_mp, :current_mp, :level, :experience)
                """,
                DEFAULT_PARTY,
            )
        logger.debug("Seeded %d party members", len(DEFAULT_PARTY))
        return self.get_party_members()

    def get_party_members(self) -> list[PartyMember]:
        rows = self._conn.execute("SELECT * FROM party_members ORDER BY id").fetchall()
        return [PartyMember.model_validate(dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Previous todos
    # ------------------------------------------------------------------

    def get_previous_todos(self, session_id: str) -> list[TodoItem]:
        """Last saved snapshot. Returns [] if the session has none."""
        row = self._conn.execute(
            "SELECT todos_json FROM previous_todos WHERE session_id = ?", (session_id,)
        ).fetchone()
        if row is None:
            return []
        return [TodoItem.model_validate(t) for t in json.loads(row["todos_json"])]

    def save_todos(self, session_id: str, todos: list[TodoItem]) -> None:
        data = json.dumps([t.to_json_dict() for t in todos])
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO previous_todos (session_id, todos_json, updated_at) "
                "VALUES (?, ?, ?)",
                (session_id, data, _now_ms()),
            )

    # ------------------------------------------------------------------
    # Battle state
    # ------------------------------------------------------------------

    def get_current_state(self, session_id: str) -> BattleState | None:
        row = self._conn.execute(
            "SELECT state_json FROM battle_state WHERE session_id = ?", (session_id,)
        ).fetchone()
        if row is None:
            return None
        return BattleState.model_validate_json(row["state_json"])

    def save_state(self, state: BattleState) -> None:
        """Upsert by session id. Only the latest state is kept."""
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO battle_state (session_id, state_json, updated_at) "
                "VALUES (?, ?, ?)",
                (state.session_id, state.model_dump_json(by_alias=True), _now_ms()),
            )

    def get_latest_state(self) -> BattleState | None:
        """Most recently updated state across all sessions."""
        row = self._conn.execute(
            "SELECT state_json FROM battle_state ORDER BY updated_at DESC LIMIT 1"
        ).fetchone()
        if row is None:
            return None
        return BattleState.model_validate_json(row["state_json"])

    def get_current_session_id(self) -> str | None:
        row = self._conn.execute(
            "SELECT session_id FROM battle_state ORDER BY updated_at DESC LIMIT 1"
        ).fetchone()
        return row["session_id"] if row else None

    # ------------------------------------------------------------------
    # Events (append-only)
    # ------------------------------------------------------------------

    def save_event(self, event: BattleEvent) -> int:
        """Insert an event and return its generated id. ``event.id`` is ignored."""
        with self._conn:
            cursor = self._conn.execute(
                """
                INSERT INTO battle_events
                    (session_id, event_type, task_content, description, image_path,
                     damage_dealt, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.session_id,
                    event.event_type,
                    event.task_content,
                    event.description,
                    event.image_path,
                    event.damage_dealt,
                    event.created_at,
                ),
            )
        return cursor.lastrowid

    def get_events(self, session_id: str, limit: int | None = None) -> list[BattleEvent]:
        """A session's events in chronological order (created_at, then id)."""
        sql = (
            f"SELECT {_EVENT_COLUMNS} FROM battle_events WHERE session_id = ? "
            "ORDER BY created_at ASC, id ASC"
        )
        params: tuple[Any, ...] = (session_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params += (limit,)
        rows = self._conn.execute(sql, params).fetchall()
        return [BattleEvent.model_validate(dict(row)) for row in rows]

    def get_recent_events(self, limit: int = 50) -> list[BattleEvent]:
        """The newest ``limit`` events across sessions, returned oldest first."""
        rows = self._conn.execute(
            f"SELECT {_EVENT_COLUMNS} FROM battle_events "
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [BattleEvent.model_validate(dict(row)) for row in reversed(rows)]

    def get_most_recent_image(self, session_id: str) -> str | None:
        row = self._conn.execute(
            """
            SELECT image_path FROM battle_events
            WHERE session_id = ? AND image_path IS NOT NULL
            ORDER BY created_at DESC, id DESC LIMIT 1
            """,
            (session_id,),
        ).fetchone()
        return row["image_path"] if row else None

    def get_session_images(self, session_id: str) -> list[str]:
        rows = self._conn.execute(
            """
            SELECT image_path FROM battle_events
            WHERE session_id = ? AND image_path IS NOT NULL
            ORDER BY created_at ASC, id ASC
            """,
            (session_id,),
        ).fetchall()
        return [row["image_path"] for row in rows]

    def list_sessions(self) -> list[dict[str, Any]]:
        """Sessions with at least one image, most recently active first."""
        rows = self._conn.execute(
            """
            SELECT
                session_id,
                COUNT(CASE WHEN image_path IS NOT NULL THEN 1 END) AS image_count,
                MIN(created_at) AS first_event_at,
                MAX(created_at) AS last_event_at
            FROM battle_events
            GROUP BY session_id
            HAVING image_count > 0
            ORDER BY last_event_at DESC
            """
        ).fetchall()
        return [
            {
                "sessionId": row["session_id"],
                "imageCount": row["image_count"],
                "firstEventAt": row["first_event_at"],
                "lastEventAt": row["last_event_at"],
            }
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Session anchor image
    # ------------------------------------------------------------------

    def get_session_anchor(self, session_id: str) -> str | None:
        row = self._conn.execute(
            "SELECT anchor_path FROM session_anchors WHERE session_id = ?", (session_id,)
        ).fetchone()
        return row["anchor_path"] if row else None

    def save_session_anchor(self, session_id: str, anchor_path: str) -> None:
        """Callers only write when no anchor exists yet."""
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO session_anchors (session_id, anchor_path, created_at) "
                "VALUES (?, ?, ?)",
                (session_id, anchor_path, _now_ms()),
            )
