from __future__ import annotations


class ReminderEngineError(Exception):
    """Base class for reminder engine failures."""


class InvalidTimeZone(ReminderEngineError, ValueError):
    def __init__(self, time_zone: object) -> None:
        self.time_zone = time_zone
        super().__init__(f"Unknown IANA time zone: {time_zone!r}")


class StorageUnavailable(ReminderEngineError):
    """Reminder storage could not complete an operation; retry on the next tick."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        message = f"storage unavailable during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
