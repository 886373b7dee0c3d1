"""Periodic tick driver on APScheduler: reminder dispatch and daily maintenance."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from reminder_engine.core.dispatcher import ReminderDispatcher
from reminder_engine.core.maintenance import MaintenanceSweeper

LOGGER = logging.getLogger(__name__)

DISPATCH_JOB_ID = "reminder_dispatch"
SWEEP_JOB_ID = "maintenance_sweep"


class AppScheduler:
    def __init__(
        self,
        *,
        dispatcher: ReminderDispatcher,
        sweeper: MaintenanceSweeper | None = None,
        tick_seconds: int = 60,
        sweep_hour: int = 0,
        sweep_minute: int = 0,
    ) -> None:
        if tick_seconds <= 0:
            raise ValueError("tick_seconds must be positive")
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._dispatcher = dispatcher
        self._sweeper = sweeper
        self._tick_seconds = tick_seconds
        self._sweep_hour = sweep_hour
        self._sweep_minute = sweep_minute

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def start(self) -> None:
        if self._scheduler.running:
            LOGGER.info("AppScheduler already started, skipping")
            return
        loop = asyncio.get_running_loop()
        self._scheduler.configure(event_loop=loop, timezone=timezone.utc)
        self._scheduler.add_job(
            self._run_dispatch,
            trigger=IntervalTrigger(seconds=self._tick_seconds, timezone=timezone.utc),
            id=DISPATCH_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        if self._sweeper is not None:
            self._scheduler.add_job(
                self._run_sweep,
                trigger=CronTrigger(hour=self._sweep_hour, minute=self._sweep_minute, timezone=timezone.utc),
                id=SWEEP_JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
        self._scheduler.start()
        LOGGER.info(
            "AppScheduler started: tick_seconds=%s sweep=%s",
            self._tick_seconds,
            f"{self._sweep_hour:02d}:{self._sweep_minute:02d}" if self._sweeper is not None else "off",
        )

    def shutdown(self, wait: bool = True) -> None:
        if not self._scheduler.running:
            return
        try:
            self._scheduler.shutdown(wait=wait)
            LOGGER.info("AppScheduler shutdown")
        except Exception:
            LOGGER.exception("AppScheduler shutdown error")

    def job_ids(self) -> list[str]:
        return sorted(job.id for job in self._scheduler.get_jobs())

    def get_job(self, job_id: str) -> Any:
        return self._scheduler.get_job(job_id)

    async def _run_dispatch(self) -> None:
        try:
            await self._dispatcher.process_tick()
        except Exception:
            LOGGER.exception("Reminder dispatch tick failed")

    async def _run_sweep(self) -> None:
        if self._sweeper is None:
            return
        try:
            self._sweeper.sweep()
        except Exception:
            LOGGER.exception("Maintenance sweep failed")
