from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from reminder_engine.core.clock import ManualClock
from reminder_engine.core.errors import StorageUnavailable
from reminder_engine.core.maintenance import DEFAULT_RETENTION, MaintenanceSweeper


class DummyArchive:
    def __init__(self, result: int = 0, fail: bool = False) -> None:
        self.result = result
        self.fail = fail
        self.cutoffs: list[datetime] = []

    def archive_ended_before(self, cutoff: datetime) -> int:
        self.cutoffs.append(cutoff)
        if self.fail:
            raise StorageUnavailable("archive_events")
        return self.result


NOW = datetime(2024, 6, 1, 0, 0, tzinfo=timezone.utc)


def test_sweep_uses_default_retention() -> None:
    archive = DummyArchive(result=3)
    sweeper = MaintenanceSweeper(archive, ManualClock(NOW))

    assert sweeper.sweep() == 3
    assert archive.cutoffs == [NOW - DEFAULT_RETENTION]
    assert DEFAULT_RETENTION == timedelta(days=90)


def test_sweep_override_retention() -> None:
    archive = DummyArchive()
    sweeper = MaintenanceSweeper(archive, ManualClock(NOW), timedelta(days=30))

    sweeper.sweep(retention=timedelta(days=7))

    assert archive.cutoffs == [NOW - timedelta(days=7)]


def test_sweep_storage_failure_returns_zero(caplog) -> None:
    sweeper = MaintenanceSweeper(DummyArchive(fail=True), ManualClock(NOW))

    with caplog.at_level("WARNING"):
        assert sweeper.sweep() == 0

    assert "Maintenance sweep skipped" in caplog.text


def test_retention_must_be_positive() -> None:
    with pytest.raises(ValueError):
        MaintenanceSweeper(DummyArchive(), ManualClock(NOW), timedelta(0))
