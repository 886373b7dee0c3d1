from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from reminder_engine.core.errors import StorageUnavailable
from reminder_engine.core.models import EventSnapshot
from reminder_engine.core.time_math import resolve_zone, to_absolute

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredEvent:
    event: EventSnapshot
    archived: bool
    updated_at: datetime


class EventStore:
    """Last known snapshot of each event, used for archiving expired events."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        try:
            if str(db_path) != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(str(db_path), check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._ensure_schema()
        except (sqlite3.Error, OSError) as exc:
            raise StorageUnavailable("open", exc) from exc

    def _ensure_schema(self) -> None:
        self._connection.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                event_id TEXT PRIMARY KEY,
                start_at TEXT NOT NULL,
                end_at TEXT,
                end_ts REAL NOT NULL,
                time_zone TEXT NOT NULL,
                participants TEXT NOT NULL,
                archived INTEGER NOT NULL DEFAULT 0,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_events_archive ON events (archived, end_ts)"
        )
        self._connection.commit()

    def upsert(self, event: EventSnapshot) -> None:
        zone = resolve_zone(event.time_zone)
        start_at = to_absolute(event.start_time, zone)
        end_at = to_absolute(event.end_time, zone) if event.end_time is not None else None
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._lock, self._connection:
                self._connection.execute(
                    """
                    INSERT INTO events (
                        event_id, start_at, end_at, end_ts, time_zone, participants, archived, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, 0, ?)
                    ON CONFLICT(event_id) DO UPDATE SET
                        start_at=excluded.start_at,
                        end_at=excluded.end_at,
                        end_ts=excluded.end_ts,
                        time_zone=excluded.time_zone,
                        participants=excluded.participants,
                        archived=0,
                        updated_at=excluded.updated_at
                    """,
                    (
                        event.event_id,
                        start_at.isoformat(),
                        end_at.isoformat() if end_at else None,
                        (end_at or start_at).timestamp(),
                        event.time_zone,
                        json.dumps(sorted(event.participants), ensure_ascii=False, separators=(",", ":")),
                        now,
                    ),
                )
        except sqlite3.Error as exc:
            raise StorageUnavailable("upsert_event", exc) from exc

    def get(self, event_id: str) -> StoredEvent | None:
        try:
            with self._lock:
                row = self._connection.execute(
                    """
                    SELECT event_id, start_at, end_at, time_zone, participants, archived, updated_at
                    FROM events
                    WHERE event_id = ?
                    """,
                    (event_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageUnavailable("get_event", exc) from exc
        if row is None:
            return None
        try:
            participants = json.loads(row["participants"])
        except json.JSONDecodeError:
            participants = []
        event = EventSnapshot(
            event_id=row["event_id"],
            start_time=datetime.fromisoformat(row["start_at"]),
            time_zone=row["time_zone"],
            participants=frozenset(str(item) for item in participants if item is not None),
            end_time=datetime.fromisoformat(row["end_at"]) if row["end_at"] else None,
        )
        return StoredEvent(
            event=event,
            archived=bool(row["archived"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def exists(self, event_id: str) -> bool:
        return self.get(event_id) is not None

    def delete(self, event_id: str) -> bool:
        try:
            with self._lock, self._connection:
                cursor = self._connection.execute("DELETE FROM events WHERE event_id = ?", (event_id,))
        except sqlite3.Error as exc:
            raise StorageUnavailable("delete_event", exc) from exc
        return bool(cursor.rowcount and cursor.rowcount > 0)

    def archive_ended_before(self, cutoff: datetime) -> int:
        if cutoff.tzinfo is None:
            raise ValueError("cutoff must be timezone-aware")
        try:
            with self._lock, self._connection:
                cursor = self._connection.execute(
                    "UPDATE events SET archived = 1, updated_at = ? WHERE archived = 0 AND end_ts < ?",
                    (datetime.now(timezone.utc).isoformat(), cutoff.timestamp()),
                )
        except sqlite3.Error as exc:
            raise StorageUnavailable("archive_events", exc) from exc
        return cursor.rowcount if cursor.rowcount and cursor.rowcount > 0 else 0

    def close(self) -> None:
        try:
            self._connection.close()
        except sqlite3.Error:
            LOGGER.exception("Failed to close event database connection")
