from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from reminder_engine.core.clock import ManualClock
from reminder_engine.core.errors import InvalidTimeZone
from reminder_engine.core.models import EventSnapshot
from reminder_engine.core.scheduler import ReminderScheduler
from reminder_engine.core.time_math import DAY_BEFORE, OffsetKind


def _event(start: datetime, *, event_id: str = "evt-1", zone: str = "America/New_York", participants=("u1", "u2")):
    return EventSnapshot(
        event_id=event_id,
        start_time=start,
        time_zone=zone,
        participants=frozenset(participants),
    )


def test_schedule_creates_both_offsets(reminder_store) -> None:
    clock = ManualClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))
    scheduler = ReminderScheduler(reminder_store, clock)

    records = scheduler.schedule(_event(datetime(2024, 3, 10, 10, 0)))

    assert [record.offset_kind for record in records] == ["day_before", "hour_before"]
    by_kind = {record.offset_kind: record for record in reminder_store.list_event_reminders("evt-1")}
    assert by_kind["day_before"].firing_at == datetime(2024, 3, 9, 15, 0, tzinfo=timezone.utc)
    assert by_kind["hour_before"].firing_at == datetime(2024, 3, 10, 13, 0, tzinfo=timezone.utc)
    assert by_kind["day_before"].recipients == frozenset({"u1", "u2"})
    assert by_kind["day_before"].start_at == datetime(2024, 3, 10, 14, 0, tzinfo=timezone.utc)


def test_elapsed_offsets_are_not_created(reminder_store) -> None:
    # event 12h away: the day-before window is already in the past
    clock = ManualClock(datetime(2024, 3, 10, 2, 0, tzinfo=timezone.utc))
    scheduler = ReminderScheduler(reminder_store, clock)

    records = scheduler.schedule(_event(datetime(2024, 3, 10, 10, 0)))

    assert [record.offset_kind for record in records] == ["hour_before"]
    assert [record.offset_kind for record in reminder_store.list_event_reminders("evt-1")] == ["hour_before"]


def test_offset_firing_exactly_now_is_skipped(reminder_store) -> None:
    clock = ManualClock(datetime(2024, 3, 10, 13, 0, tzinfo=timezone.utc))
    scheduler = ReminderScheduler(reminder_store, clock)

    records = scheduler.schedule(_event(datetime(2024, 3, 10, 10, 0)))

    assert records == []
    assert reminder_store.list_event_reminders("evt-1") == []


def test_event_in_the_past_schedules_nothing(reminder_store) -> None:
    clock = ManualClock(datetime(2024, 4, 1, 0, 0, tzinfo=timezone.utc))
    scheduler = ReminderScheduler(reminder_store, clock)

    assert scheduler.schedule(_event(datetime(2024, 3, 10, 10, 0))) == []


def test_schedule_then_cancel_leaves_nothing(reminder_store, clock) -> None:
    scheduler = ReminderScheduler(reminder_store, clock)
    scheduler.schedule(_event(datetime(2024, 3, 10, 10, 0)))

    scheduler.cancel("evt-1")
    scheduler.cancel("evt-1")

    assert reminder_store.list_event_reminders("evt-1") == []
    assert reminder_store.due_before(datetime(2024, 3, 11, tzinfo=timezone.utc)) == []


def test_reschedule_replaces_previous_set(reminder_store, clock) -> None:
    scheduler = ReminderScheduler(reminder_store, clock)
    scheduler.schedule(_event(datetime(2024, 3, 10, 10, 0)))
    reminder_store.mark_sent("evt-1", "day_before", clock.now())

    scheduler.reschedule(_event(datetime(2024, 3, 20, 10, 0), participants=("u3",)))

    stored = reminder_store.list_event_reminders("evt-1")
    assert len(stored) == 2
    assert all(not record.sent for record in stored)
    assert all(record.recipients == frozenset({"u3"}) for record in stored)
    assert stored[0].firing_at == datetime(2024, 3, 19, 14, 0, tzinfo=timezone.utc)


def test_reschedule_is_idempotent(reminder_store, clock) -> None:
    scheduler = ReminderScheduler(reminder_store, clock)
    event = _event(datetime(2024, 3, 10, 10, 0))

    first = scheduler.reschedule(event)
    second = scheduler.reschedule(event)

    assert first == second
    assert reminder_store.list_event_reminders("evt-1") == second


def test_invalid_zone_writes_nothing(reminder_store, clock) -> None:
    scheduler = ReminderScheduler(reminder_store, clock)

    with pytest.raises(InvalidTimeZone):
        scheduler.schedule(_event(datetime(2024, 3, 10, 10, 0), zone="Not/AZone"))

    assert reminder_store.list_event_reminders("evt-1") == []


def test_custom_offsets(reminder_store, clock) -> None:
    offsets = (DAY_BEFORE, OffsetKind("week_before", timedelta(days=7)))
    scheduler = ReminderScheduler(reminder_store, clock, offsets)

    records = scheduler.schedule(_event(datetime(2024, 3, 20, 9, 0), zone="UTC"))

    assert {record.offset_kind for record in records} == {"day_before", "week_before"}
    assert scheduler.offsets == offsets


def test_duplicate_offset_names_rejected(reminder_store, clock) -> None:
    with pytest.raises(ValueError):
        ReminderScheduler(reminder_store, clock, (DAY_BEFORE, DAY_BEFORE))


def test_event_without_participants_still_schedules(reminder_store, clock) -> None:
    scheduler = ReminderScheduler(reminder_store, clock)

    records = scheduler.schedule(_event(datetime(2024, 3, 10, 10, 0), participants=()))

    assert len(records) == 2
    assert all(record.recipients == frozenset() for record in records)
