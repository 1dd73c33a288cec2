"""Session snapshot storage layer."""

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .config import DATA_DIR
from .errors import SessionNotFoundError
from .schemas import SessionSnapshot, TradeSchema, TradeSessionRecord
from .trading_models import Trade

logger = logging.getLogger(__name__)

DB_PATH = DATA_DIR / "sessions.db"


class SessionStore:
    """SQLite-backed snapshot/restore of whole sessions plus a trade journal.

    Each snapshot is written as one JSON row, so a save either fully replaces
    the previous blob or leaves it untouched.
    """

    def __init__(self, db_path: Union[str, Path] = DB_PATH):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    name TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS trade_sessions (
                    id TEXT PRIMARY KEY,
                    instrument TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )

    # ---- snapshots

    def save(self, snapshot: SessionSnapshot) -> None:
        now = datetime.now(tz=timezone.utc)
        snapshot = snapshot.model_copy(update={"last_updated": now})
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO sessions (name, payload, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at
                """,
                (snapshot.name, snapshot.model_dump_json(), now.isoformat()),
            )
        logger.info("Saved session %s (%d trades, %d drawings)", snapshot.name, len(snapshot.trades), len(snapshot.drawings))

    def load(self, name: str = "current_session") -> SessionSnapshot:
        with self._connect() as conn:
            row = conn.execute("SELECT payload FROM sessions WHERE name = ?", (name,)).fetchone()
        if row is None:
            raise SessionNotFoundError(f"Session not found: {name}")
        return SessionSnapshot.model_validate_json(row["payload"])

    def delete(self, name: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE name = ?", (name,))
            return cursor.rowcount > 0

    def list_sessions(self) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT name FROM sessions ORDER BY updated_at DESC").fetchall()
        return [row["name"] for row in rows]

    # ---- trade journal

    def save_trade_session(self, instrument: str, trades: Sequence[Trade], total_pnl: float, win_rate: float) -> TradeSessionRecord:
        now_ts = int(datetime.now(tz=timezone.utc).timestamp())
        record = TradeSessionRecord(
            id=f"session-{uuid.uuid4().hex}",
            instrument=instrument,
            start_date=trades[0].timestamp if trades else now_ts,
            end_date=trades[-1].timestamp if trades else now_ts,
            trades=[TradeSchema.from_trade(t) for t in trades],
            total_pnl=total_pnl,
            win_rate=win_rate,
            total_trades=len(trades),
        )
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO trade_sessions (id, instrument, payload, created_at) VALUES (?, ?, ?, ?)",
                (record.id, instrument, record.model_dump_json(), datetime.now(tz=timezone.utc).isoformat()),
            )
        return record

    def list_trade_sessions(self) -> List[TradeSessionRecord]:
        with self._connect() as conn:
            rows = conn.execute("SELECT payload FROM trade_sessions ORDER BY created_at ASC").fetchall()
        return [TradeSessionRecord.model_validate_json(row["payload"]) for row in rows]

    def get_trade_session(self, session_id: str) -> Optional[TradeSessionRecord]:
        with self._connect() as conn:
            row = conn.execute("SELECT payload FROM trade_sessions WHERE id = ?", (session_id,)).fetchone()
        return TradeSessionRecord.model_validate_json(row["payload"]) if row else None

    def delete_trade_session(self, session_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM trade_sessions WHERE id = ?", (session_id,))
            return cursor.rowcount > 0

    def clear_trade_sessions(self) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM trade_sessions")
            return cursor.rowcount
