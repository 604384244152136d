# Durable handoff between capture sessions and the host application.
from __future__ import annotations

import os
import sqlite3
import time
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

DEFAULT_DESTINATION = "inbox"
DEFAULT_KIND = "voice"


def _base_dir() -> Path:
    """Return base data directory, respecting the DATA_DIR environment variable."""
    return Path(os.getenv("DATA_DIR", "data"))


def _db_path() -> Path:
    return _base_dir() / "pending_captures.db"


def _now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PendingResult:
    """One finished capture waiting for the host application to import it."""

    id: str
    text: str
    destination_hint: str = DEFAULT_DESTINATION
    created_at: int = 0
    kind: str = DEFAULT_KIND

    @classmethod
    def create(
        cls,
        text: str,
        destination_hint: str = DEFAULT_DESTINATION,
        kind: str = DEFAULT_KIND,
    ) -> "PendingResult":
        return cls(
            id=str(uuid4()),
            text=text,
            destination_hint=destination_hint,
            created_at=_now_millis(),
            kind=kind,
        )

    def to_dict(self) -> Dict:
        """Wire shape shared with the host application."""
        return {
            "id": self.id,
            "text": self.text,
            "destinationHint": self.destination_hint,
            "createdAt": self.created_at,
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "PendingResult":
        return cls(
            id=str(data["id"]),
            text=str(data["text"]),
            destination_hint=data.get("destinationHint") or DEFAULT_DESTINATION,
            created_at=int(data.get("createdAt", 0)),
            kind=data.get("kind") or DEFAULT_KIND,
        )


class _SQLiteStore:
    """Connection handling shared by the queue and status stores.

    Each call opens its own connection so that independent processes (the
    capture service and the host application) never share handles. WAL
    journaling lets readers proceed while a writer commits; FULL sync makes a
    committed append survive power loss.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = Path(db_path) if db_path is not None else _db_path()
        self._ensure_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.execute("PRAGMA synchronous=FULL")
        return conn

    def _ensure_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS pending_results (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT UNIQUE NOT NULL,
                    text TEXT NOT NULL,
                    destination_hint TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    kind TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE TABLE IF NOT EXISTS capture_status (key TEXT PRIMARY KEY, value TEXT, updated_at INTEGER, owner INTEGER)"
            )
            columns = {row[1] for row in conn.execute("PRAGMA table_info(capture_status)")}
            if "owner" not in columns:
                conn.execute("ALTER TABLE capture_status ADD COLUMN owner INTEGER")
            conn.commit()


class PendingQueueStore(_SQLiteStore):
    """Append-only queue of :class:`PendingResult` records.

    Records are never updated in place. The consumer reads everything and
    acknowledges with :meth:`clear_all` or :meth:`clear_ids`.
    """

    def append(self, result: PendingResult) -> PendingResult:
        with closing(self._connect()) as conn:
            with conn:
                conn.execute(
                    "INSERT INTO pending_results (id, text, destination_hint, created_at, kind) VALUES (?,?,?,?,?)",
                    (result.id, result.text, result.destination_hint, result.created_at, result.kind),
                )
        return result

    def read_all(self) -> List[PendingResult]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT id, text, destination_hint, created_at, kind FROM pending_results ORDER BY seq"
            ).fetchall()
        return [PendingResult(*row) for row in rows]

    def clear_all(self) -> int:
        """Delete every record, including any appended after the caller's last read.

        Importers should acknowledge what they actually read with
        :meth:`clear_ids` instead.
        """
        with closing(self._connect()) as conn:
            with conn:
                cur = conn.execute("DELETE FROM pending_results")
        return cur.rowcount

    def clear_ids(self, ids: Iterable[str]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        placeholders = ",".join("?" for _ in ids)
        with closing(self._connect()) as conn:
            with conn:
                cur = conn.execute(
                    f"DELETE FROM pending_results WHERE id IN ({placeholders})", ids
                )
        return cur.rowcount

    def count(self) -> int:
        with closing(self._connect()) as conn:
            return conn.execute("SELECT COUNT(*) FROM pending_results").fetchone()[0]


class StatusStore(_SQLiteStore):
    """Latest published capture status, readable from any process.

    Each row remembers the pid of the process that wrote it so a reader can
    tell a live capture elsewhere from one abandoned by a crashed process.
    """

    KEY = "capture"

    def save(self, value: str, owner: Optional[int] = None) -> None:
        with closing(self._connect()) as conn:
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO capture_status (key, value, updated_at, owner) VALUES (?,?,?,?)",
                    (self.KEY, value, _now_millis(), owner),
                )

    def load(self) -> Optional[Tuple[str, int, Optional[int]]]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT value, updated_at, owner FROM capture_status WHERE key=?", (self.KEY,)
            ).fetchone()
        return (row[0], row[1], row[2]) if row else None


def export_pending(store: PendingQueueStore) -> List[Dict]:
    """Return every pending record in its wire shape."""
    return [r.to_dict() for r in store.read_all()]
