from __future__ import annotations

import logging
from typing import Protocol

from reminder_engine.core.models import ReminderRecord

LOGGER = logging.getLogger(__name__)


class Notifier(Protocol):
    async def attempt_delivery(self, record: ReminderRecord, recipient_id: str) -> bool:
        """Try to deliver one reminder to one recipient; True only on acknowledged delivery."""


class LoggingNotifier:
    """Dry-run delivery: logs the reminder and reports success."""

    async def attempt_delivery(self, record: ReminderRecord, recipient_id: str) -> bool:
        LOGGER.info(
            "Reminder delivered (dry run): %s recipient_id=%s start_at=%s time_zone=%s",
            record.describe(),
            recipient_id,
            record.start_at.isoformat(),
            record.time_zone,
        )
        return True
