"""Tick-driven reminder dispatch.

Each tick reads every unsent reminder whose firing instant has passed and
tries to deliver it to all of its recipients. A record is marked sent only
when every recipient acknowledged delivery; otherwise it stays unsent and the
whole record is retried on the next tick, so delivery is at-least-once.

The outcome is written back under the generation the record was read with,
so a reminder rescheduled or canceled mid-delivery is never marked by a
stale tick. Store calls run in a worker thread to keep the loop responsive.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

from reminder_engine.core.clock import Clock
from reminder_engine.core.errors import StorageUnavailable
from reminder_engine.core.models import ReminderRecord
from reminder_engine.core.notifier import Notifier

LOGGER = logging.getLogger(__name__)

DEFAULT_DELIVERY_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_CONCURRENCY = 8


class DueReminderSource(Protocol):
    def due_before(self, now: datetime) -> list[ReminderRecord]: ...

    def mark_sent(
        self,
        event_id: str,
        offset_kind: str,
        sent_at: datetime | None = None,
        *,
        generation: str | None = None,
    ) -> bool: ...

    def record_failure(
        self,
        event_id: str,
        offset_kind: str,
        attempted_at: datetime,
        *,
        generation: str | None = None,
    ) -> bool: ...


class Outcome(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    # delivered, but the record was canceled or rescheduled meanwhile
    STALE = "stale"


@dataclass(frozen=True)
class TickReport:
    due: int = 0
    sent: int = 0
    failed: int = 0
    stale: int = 0
    skipped: bool = False
    duration_ms: int = 0


class ReminderDispatcher:
    def __init__(
        self,
        store: DueReminderSource,
        notifier: Notifier,
        clock: Clock,
        *,
        delivery_timeout_seconds: float = DEFAULT_DELIVERY_TIMEOUT_SECONDS,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        if delivery_timeout_seconds <= 0:
            raise ValueError("delivery_timeout_seconds must be positive")
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._delivery_timeout = delivery_timeout_seconds
        self._max_concurrency = max(1, max_concurrency)
        self._tick_lock = asyncio.Lock()

    async def process_tick(self) -> TickReport:
        if self._tick_lock.locked():
            LOGGER.warning("Reminder tick skipped: previous tick still running")
            return TickReport(skipped=True)
        async with self._tick_lock:
            return await self._run_tick()

    async def _run_tick(self) -> TickReport:
        started = time.monotonic()
        now = self._clock.now()
        try:
            due = await asyncio.to_thread(self._store.due_before, now)
        except StorageUnavailable:
            LOGGER.warning("Reminder tick skipped: storage unavailable now=%s", now.isoformat())
            return TickReport(skipped=True)
        if not due:
            return TickReport(duration_ms=_elapsed_ms(started))
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _guarded(record: ReminderRecord) -> Outcome:
            async with semaphore:
                return await self._dispatch_record(record)

        outcomes = await asyncio.gather(*(_guarded(record) for record in due))
        report = TickReport(
            due=len(due),
            sent=outcomes.count(Outcome.SENT),
            failed=outcomes.count(Outcome.FAILED),
            stale=outcomes.count(Outcome.STALE),
            duration_ms=_elapsed_ms(started),
        )
        LOGGER.info(
            "Reminder tick complete: due=%s sent=%s failed=%s stale=%s duration_ms=%s",
            report.due,
            report.sent,
            report.failed,
            report.stale,
            report.duration_ms,
        )
        return report

    async def _dispatch_record(self, record: ReminderRecord) -> Outcome:
        recipients = sorted(record.recipients)
        results = await asyncio.gather(*(self._attempt(record, recipient) for recipient in recipients))
        failed = [recipient for recipient, ok in zip(recipients, results) if not ok]
        attempted_at = self._clock.now()
        if failed:
            LOGGER.warning(
                "Reminder delivery incomplete: %s failed=%s total=%s attempts=%s",
                record.describe(),
                len(failed),
                len(recipients),
                record.attempts + 1,
            )
            try:
                await asyncio.to_thread(
                    self._store.record_failure,
                    record.event_id,
                    record.offset_kind,
                    attempted_at,
                    generation=record.generation,
                )
            except StorageUnavailable:
                LOGGER.warning("Reminder failure not recorded: %s", record.describe())
            return Outcome.FAILED
        try:
            marked = await asyncio.to_thread(
                self._store.mark_sent,
                record.event_id,
                record.offset_kind,
                attempted_at,
                generation=record.generation,
            )
        except StorageUnavailable:
            LOGGER.warning("Reminder delivered but not marked sent, will retry: %s", record.describe())
            return Outcome.FAILED
        if not marked:
            LOGGER.info(
                "Reminder delivered but canceled or rescheduled meanwhile: %s recipients=%s",
                record.describe(),
                len(recipients),
            )
            return Outcome.STALE
        LOGGER.info("Reminder sent: %s recipients=%s", record.describe(), len(recipients))
        return Outcome.SENT

    async def _attempt(self, record: ReminderRecord, recipient_id: str) -> bool:
        try:
            delivered = await asyncio.wait_for(
                self._notifier.attempt_delivery(record, recipient_id),
                timeout=self._delivery_timeout,
            )
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Reminder delivery timed out: %s recipient_id=%s timeout=%s",
                record.describe(),
                recipient_id,
                self._delivery_timeout,
            )
            return False
        except Exception:
            LOGGER.exception("Reminder delivery failed: %s recipient_id=%s", record.describe(), recipient_id)
            return False
        if not delivered:
            LOGGER.warning("Reminder delivery rejected: %s recipient_id=%s", record.describe(), recipient_id)
        return bool(delivered)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
