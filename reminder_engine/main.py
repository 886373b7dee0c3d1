from __future__ import annotations

import asyncio
import logging
import signal

from reminder_engine.core.app_scheduler import AppScheduler
from reminder_engine.core.clock import Clock, SystemClock
from reminder_engine.core.dispatcher import ReminderDispatcher
from reminder_engine.core.lifecycle import EventLifecycle
from reminder_engine.core.maintenance import MaintenanceSweeper
from reminder_engine.core.notifier import LoggingNotifier, Notifier
from reminder_engine.core.scheduler import ReminderScheduler
from reminder_engine.infra.config import Settings, load_settings, validate_settings
from reminder_engine.infra.event_store import EventStore
from reminder_engine.infra.logging_config import configure_logging
from reminder_engine.infra.reminder_store import ReminderStore
from reminder_engine.infra.resilience import RetryPolicy
from reminder_engine.infra.webhook_notifier import WebhookNotifier

LOGGER = logging.getLogger(__name__)


def build_notifier(settings: Settings) -> Notifier:
    if settings.notifier == "webhook" and settings.webhook_url:
        return WebhookNotifier(
            settings.webhook_url,
            timeout_seconds=settings.webhook_timeout_seconds,
            retry_policy=RetryPolicy(max_attempts=settings.webhook_max_attempts),
            permanent_as_delivered=settings.webhook_permanent_as_delivered,
        )
    return LoggingNotifier()


def build_lifecycle(settings: Settings, *, clock: Clock | None = None) -> EventLifecycle:
    """Wire the hooks the event CRUD layer calls after create, update and delete."""
    clock = clock or SystemClock()
    scheduler = ReminderScheduler(ReminderStore(settings.db_path), clock, settings.reminder_offsets)
    return EventLifecycle(scheduler, EventStore(settings.db_path))


async def run(settings: Settings, *, stop_event: asyncio.Event | None = None) -> None:
    stop = stop_event or asyncio.Event()
    clock = SystemClock()
    reminder_store = ReminderStore(settings.db_path)
    event_store = EventStore(settings.db_path)
    notifier = build_notifier(settings)
    dispatcher = ReminderDispatcher(
        reminder_store,
        notifier,
        clock,
        delivery_timeout_seconds=settings.delivery_timeout_seconds,
        max_concurrency=settings.max_concurrent_deliveries,
    )
    sweeper = MaintenanceSweeper(event_store, clock, settings.retention) if settings.sweep_enabled else None
    app_scheduler = AppScheduler(
        dispatcher=dispatcher,
        sweeper=sweeper,
        tick_seconds=settings.tick_seconds,
        sweep_hour=settings.sweep_hour,
        sweep_minute=settings.sweep_minute,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            LOGGER.debug("Signal handler not installed: signal=%s", sig)

    app_scheduler.start()
    LOGGER.info(
        "Reminder service started: db_path=%s notifier=%s offsets=%s",
        settings.db_path,
        settings.notifier,
        ",".join(offset.name for offset in settings.reminder_offsets),
    )
    try:
        await stop.wait()
    finally:
        app_scheduler.shutdown(wait=False)
        if isinstance(notifier, WebhookNotifier):
            await notifier.aclose()
        reminder_store.close()
        event_store.close()
        LOGGER.info("Reminder service stopped")


def main() -> None:
    configure_logging()
    settings = load_settings()
    validate_settings(settings)
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
