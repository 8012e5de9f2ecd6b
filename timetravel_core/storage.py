"""
SQLite-based persistence for extracted staking states.

``extract`` stores the state fetched at a block so that ``transform`` can
run any number of analyses over it later without touching the network.
States are keyed by block hash and stored as their JSON export.

Usage:
    store = StateStore("data/states.db")
    store.save_state(state)
    state = store.load_state("0xabc...")
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from timetravel_core.errors import SnapshotError
from timetravel_core.state import StakingState

logger = logging.getLogger("timetravel.storage")


class StateStore:
    """Thin SQLite wrapper for persisting staking states."""

    CURRENT_SCHEMA_VERSION = 1

    def __init__(self, db_path: str = "data/states.db"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA busy_timeout = 5000")
        self._create_tables()
        self._ensure_schema_version()
        logger.info("Storage opened: %s", db_path)

    # ── schema ───────────────────────────────────────────────────

    def _create_tables(self) -> None:
        c = self._conn
        c.execute("""
            CREATE TABLE IF NOT EXISTS states (
                block_hash   TEXT PRIMARY KEY,
                block_number INTEGER NOT NULL,
                chain        TEXT NOT NULL,
                payload      TEXT NOT NULL,
                saved_at     REAL NOT NULL
            )
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                id      INTEGER PRIMARY KEY CHECK (id = 1),
                version INTEGER NOT NULL
            )
        """)
        c.commit()

    def _ensure_schema_version(self) -> None:
        row = self._conn.execute(
            "SELECT version FROM schema_version WHERE id = 1"
        ).fetchone()
        if row is None:
            self._conn.execute(
                "INSERT INTO schema_version (id, version) VALUES (1, ?)",
                (self.CURRENT_SCHEMA_VERSION,),
            )
            self._conn.commit()
        elif row["version"] > self.CURRENT_SCHEMA_VERSION:
            raise RuntimeError(
                f"Database schema v{row['version']} is newer than this software "
                f"(v{self.CURRENT_SCHEMA_VERSION}).  Upgrade timetravel."
            )

    # ── states ───────────────────────────────────────────────────

    def save_state(self, state: StakingState) -> None:
        if not state.block_hash:
            raise ValueError("cannot store a state without a block hash")
        self._conn.execute(
            """INSERT OR REPLACE INTO states
               (block_hash, block_number, chain, payload, saved_at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                state.block_hash,
                state.block_number,
                state.profile.name,
                json.dumps(state.to_dict(), separators=(",", ":")),
                time.time(),
            ),
        )
        self._conn.commit()
        logger.info("Stored state #%d (%s)", state.block_number, state.block_hash)

    def has_state(self, block_hash: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM states WHERE block_hash = ?", (block_hash,)
        ).fetchone()
        return row is not None

    def load_state(self, block_hash: str) -> StakingState:
        row = self._conn.execute(
            "SELECT payload FROM states WHERE block_hash = ?", (block_hash,)
        ).fetchone()
        if row is None:
            raise SnapshotError(f"no stored state for block {block_hash}")
        return StakingState.from_dict(json.loads(row["payload"]))

    def list_states(self) -> list[dict[str, Any]]:
        rows = self._conn.execute(
            "SELECT block_hash, block_number, chain, saved_at FROM states "
            "ORDER BY block_number"
        ).fetchall()
        return [dict(r) for r in rows]

    def close(self) -> None:
        self._conn.close()
