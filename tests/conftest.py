import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from reminder_engine.core.clock import ManualClock  # noqa: E402
from reminder_engine.infra.reminder_store import ReminderStore  # noqa: E402


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def reminder_store(tmp_path: Path):
    store = ReminderStore(tmp_path / "reminders.db")
    yield store
    store.close()
