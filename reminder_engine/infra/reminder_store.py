from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator

from reminder_engine.core.errors import StorageUnavailable
from reminder_engine.core.models import ReminderRecord

LOGGER = logging.getLogger(__name__)

_SELECT_COLUMNS = """
    event_id, offset_kind, firing_at, recipients, start_at, time_zone,
    sent, sent_at, attempts, last_attempt_at, generation
"""


class ReminderStore:
    """SQLite-backed reminder records, one row per (event, offset kind).

    Every public operation runs under a single lock and, for writes, inside
    one transaction, so a reader never sees half of a replaced event set.
    """

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = db_path
        self._lock = threading.RLock()
        try:
            if str(db_path) != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(str(db_path), check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._ensure_schema()
        except (sqlite3.Error, OSError) as exc:
            raise StorageUnavailable("open", exc) from exc

    def _ensure_schema(self) -> None:
        self._connection.execute("PRAGMA journal_mode=WAL")
        self._connection.execute(
            """
            CREATE TABLE IF NOT EXISTS event_reminders (
                event_id TEXT NOT NULL,
                offset_kind TEXT NOT NULL,
                firing_ts REAL NOT NULL,
                firing_at TEXT NOT NULL,
                recipients TEXT NOT NULL,
                start_at TEXT NOT NULL,
                time_zone TEXT NOT NULL,
                sent INTEGER NOT NULL DEFAULT 0,
                sent_at TEXT,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_attempt_at TEXT,
                generation TEXT NOT NULL DEFAULT '',
                PRIMARY KEY (event_id, offset_kind)
            )
            """
        )
        columns = self._connection.execute("PRAGMA table_info(event_reminders)").fetchall()
        column_names = {row[1] for row in columns}
        if "generation" not in column_names:
            self._connection.execute(
                "ALTER TABLE event_reminders ADD COLUMN generation TEXT NOT NULL DEFAULT ''"
            )
        self._connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_event_reminders_due ON event_reminders (sent, firing_ts)"
        )
        self._connection.commit()

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._connection:
                    yield self._connection
            except sqlite3.Error as exc:
                LOGGER.warning("Reminder store failure: operation=%s error=%s", operation, exc)
                raise StorageUnavailable(operation, exc) from exc

    def replace_event_reminders(self, event_id: str, records: Iterable[ReminderRecord]) -> str:
        """Swap the stored set for ``records``; returns the generation stamped on every new row."""
        generation = uuid.uuid4().hex
        rows = []
        for record in records:
            if record.event_id != event_id:
                raise ValueError(
                    f"record for event {record.event_id!r} passed to replace of {event_id!r}"
                )
            rows.append(_record_to_row(record, generation))
        with self._transaction("replace_event_reminders") as conn:
            conn.execute("DELETE FROM event_reminders WHERE event_id = ?", (event_id,))
            conn.executemany(
                """
                INSERT INTO event_reminders (
                    event_id, offset_kind, firing_ts, firing_at, recipients, start_at,
                    time_zone, sent, sent_at, attempts, last_attempt_at, generation
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        LOGGER.debug(
            "Reminders replaced: event_id=%s count=%s generation=%s", event_id, len(rows), generation
        )
        return generation

    def delete_event_reminders(self, event_id: str) -> int:
        with self._transaction("delete_event_reminders") as conn:
            cursor = conn.execute("DELETE FROM event_reminders WHERE event_id = ?", (event_id,))
        return cursor.rowcount if cursor.rowcount and cursor.rowcount > 0 else 0

    def due_before(self, now: datetime) -> list[ReminderRecord]:
        with self._transaction("due_before") as conn:
            cursor = conn.execute(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM event_reminders
                WHERE sent = 0 AND firing_ts <= ?
                ORDER BY firing_ts ASC, event_id ASC, offset_kind ASC
                """,
                (_as_utc(now).timestamp(),),
            )
            rows = cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    def mark_sent(
        self,
        event_id: str,
        offset_kind: str,
        sent_at: datetime | None = None,
        *,
        generation: str | None = None,
    ) -> bool:
        """Flip one unsent record to sent.

        With ``generation`` set, only the stored version that was read under
        that generation is touched; a record replaced in the meantime stays
        unsent.
        """
        stamp = _as_utc(sent_at or datetime.now(timezone.utc)).isoformat()
        where, params = _record_filter(event_id, offset_kind, generation)
        with self._transaction("mark_sent") as conn:
            cursor = conn.execute(
                f"UPDATE event_reminders SET sent = 1, sent_at = ? WHERE {where}",
                (stamp, *params),
            )
        return bool(cursor.rowcount and cursor.rowcount > 0)

    def record_failure(
        self,
        event_id: str,
        offset_kind: str,
        attempted_at: datetime,
        *,
        generation: str | None = None,
    ) -> bool:
        where, params = _record_filter(event_id, offset_kind, generation)
        with self._transaction("record_failure") as conn:
            cursor = conn.execute(
                f"UPDATE event_reminders SET attempts = attempts + 1, last_attempt_at = ? WHERE {where}",
                (_as_utc(attempted_at).isoformat(), *params),
            )
        return bool(cursor.rowcount and cursor.rowcount > 0)

    def list_event_reminders(self, event_id: str) -> list[ReminderRecord]:
        with self._transaction("list_event_reminders") as conn:
            cursor = conn.execute(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM event_reminders
                WHERE event_id = ?
                ORDER BY firing_ts ASC, offset_kind ASC
                """,
                (event_id,),
            )
            rows = cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    def close(self) -> None:
        with self._lock:
            try:
                self._connection.close()
            except sqlite3.Error:
                LOGGER.exception("Failed to close reminder database connection")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("reminder store expects timezone-aware datetimes")
    return value.astimezone(timezone.utc)


def _record_filter(event_id: str, offset_kind: str, generation: str | None) -> tuple[str, tuple[object, ...]]:
    where = "event_id = ? AND offset_kind = ? AND sent = 0"
    if generation is None:
        return where, (event_id, offset_kind)
    return f"{where} AND generation = ?", (event_id, offset_kind, generation)


def _parse_stamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    return datetime.fromisoformat(value).astimezone(timezone.utc)


def _record_to_row(record: ReminderRecord, generation: str) -> tuple[object, ...]:
    firing_at = _as_utc(record.firing_at)
    return (
        record.event_id,
        record.offset_kind,
        firing_at.timestamp(),
        firing_at.isoformat(),
        json.dumps(sorted(record.recipients), ensure_ascii=False, separators=(",", ":")),
        _as_utc(record.start_at).isoformat(),
        record.time_zone,
        1 if record.sent else 0,
        _as_utc(record.sent_at).isoformat() if record.sent_at else None,
        record.attempts,
        _as_utc(record.last_attempt_at).isoformat() if record.last_attempt_at else None,
        generation,
    )


def _row_to_record(row: sqlite3.Row) -> ReminderRecord:
    try:
        recipients = json.loads(row["recipients"])
    except (TypeError, json.JSONDecodeError):
        LOGGER.warning(
            "Corrupted recipients column: event_id=%s offset_kind=%s",
            row["event_id"],
            row["offset_kind"],
        )
        recipients = []
    if not isinstance(recipients, list):
        recipients = []
    return ReminderRecord(
        event_id=row["event_id"],
        offset_kind=row["offset_kind"],
        firing_at=datetime.fromisoformat(row["firing_at"]).astimezone(timezone.utc),
        recipients=frozenset(str(item) for item in recipients),
        start_at=datetime.fromisoformat(row["start_at"]).astimezone(timezone.utc),
        time_zone=row["time_zone"],
        sent=bool(row["sent"]),
        sent_at=_parse_stamp(row["sent_at"]),
        attempts=int(row["attempts"] or 0),
        last_attempt_at=_parse_stamp(row["last_attempt_at"]),
        generation=row["generation"] or "",
    )
