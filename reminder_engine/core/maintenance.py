from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Protocol

from reminder_engine.core.clock import Clock
from reminder_engine.core.errors import StorageUnavailable

LOGGER = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=90)


class EventArchive(Protocol):
    def archive_ended_before(self, cutoff: datetime) -> int: ...


class MaintenanceSweeper:
    """Archives events that ended longer ago than the retention window."""

    def __init__(self, archive: EventArchive, clock: Clock, retention: timedelta = DEFAULT_RETENTION) -> None:
        if retention <= timedelta(0):
            raise ValueError("retention must be positive")
        self._archive = archive
        self._clock = clock
        self._retention = retention

    def sweep(self, retention: timedelta | None = None) -> int:
        window = retention if retention is not None else self._retention
        cutoff = self._clock.now() - window
        try:
            archived = self._archive.archive_ended_before(cutoff)
        except StorageUnavailable:
            LOGGER.warning("Maintenance sweep skipped: storage unavailable cutoff=%s", cutoff.isoformat())
            return 0
        LOGGER.info("Maintenance sweep complete: archived=%s cutoff=%s", archived, cutoff.isoformat())
        return archived
